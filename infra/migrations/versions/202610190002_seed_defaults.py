"""seed default departments, roles, menus and users

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
from sqlmodel import Session

from app.services.bootstrap_service import BootstrapService

# revision identifiers, used by Alembic.
revision = "202610190002"
down_revision = "202610190001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    session = Session(bind=op.get_bind())
    try:
        BootstrapService().seed(session)
    finally:
        session.close()


def downgrade() -> None:
    for table in (
        "sys_role_dept",
        "sys_role_menu",
        "sys_user_post",
        "sys_user_role",
        "sys_user",
        "sys_role",
        "sys_menu",
        "sys_post",
        "sys_dept",
    ):
        op.execute(f"DELETE FROM {table}")
