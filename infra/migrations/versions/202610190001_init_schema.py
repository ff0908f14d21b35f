"""init admin schema

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("create_by", sa.String(), nullable=True),
        sa.Column("create_time", sa.DateTime(), nullable=False),
        sa.Column("update_by", sa.String(), nullable=True),
        sa.Column("update_time", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "sys_dept",
        sa.Column("dept_id", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=False),
        sa.Column("ancestors", sa.String(), nullable=False),
        sa.Column("dept_name", sa.String(), nullable=False),
        sa.Column("order_num", sa.Integer(), nullable=False),
        sa.Column("leader", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("del_flag", sa.String(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("dept_id"),
    )
    op.create_index("ix_sys_dept_parent_id", "sys_dept", ["parent_id"])

    op.create_table(
        "sys_user",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("dept_id", sa.Integer(), nullable=True),
        sa.Column("user_name", sa.String(), nullable=False),
        sa.Column("nick_name", sa.String(), nullable=False),
        sa.Column("user_type", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phonenumber", sa.String(), nullable=True),
        sa.Column("sex", sa.String(), nullable=False),
        sa.Column("avatar", sa.String(), nullable=True),
        sa.Column("password", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("del_flag", sa.String(), nullable=False),
        sa.Column("login_ip", sa.String(), nullable=True),
        sa.Column("login_date", sa.DateTime(), nullable=True),
        *_audit_columns(),
        sa.Column("remark", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index("ix_sys_user_dept_id", "sys_user", ["dept_id"])
    op.create_index("ix_sys_user_user_name", "sys_user", ["user_name"], unique=True)

    op.create_table(
        "sys_role",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("role_name", sa.String(), nullable=False),
        sa.Column("role_key", sa.String(), nullable=False),
        sa.Column("role_sort", sa.Integer(), nullable=False),
        sa.Column("data_scope", sa.String(), nullable=False),
        sa.Column("menu_check_strictly", sa.Boolean(), nullable=False),
        sa.Column("dept_check_strictly", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("del_flag", sa.String(), nullable=False),
        *_audit_columns(),
        sa.Column("remark", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("role_id"),
    )
    op.create_index("ix_sys_role_role_name", "sys_role", ["role_name"])
    op.create_index("ix_sys_role_role_key", "sys_role", ["role_key"])

    op.create_table(
        "sys_menu",
        sa.Column("menu_id", sa.Integer(), nullable=False),
        sa.Column("menu_name", sa.String(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=False),
        sa.Column("order_num", sa.Integer(), nullable=False),
        sa.Column("path", sa.String(), nullable=False),
        sa.Column("component", sa.String(), nullable=True),
        sa.Column("query", sa.String(), nullable=True),
        sa.Column("route_name", sa.String(), nullable=True),
        sa.Column("is_frame", sa.Integer(), nullable=False),
        sa.Column("is_cache", sa.Integer(), nullable=False),
        sa.Column("menu_type", sa.String(), nullable=False),
        sa.Column("visible", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("perms", sa.String(), nullable=True),
        sa.Column("icon", sa.String(), nullable=False),
        *_audit_columns(),
        sa.Column("remark", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("menu_id"),
    )
    op.create_index("ix_sys_menu_parent_id", "sys_menu", ["parent_id"])

    op.create_table(
        "sys_post",
        sa.Column("post_id", sa.Integer(), nullable=False),
        sa.Column("post_code", sa.String(), nullable=False),
        sa.Column("post_name", sa.String(), nullable=False),
        sa.Column("post_sort", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        *_audit_columns(),
        sa.Column("remark", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("post_id"),
    )
    op.create_index("ix_sys_post_post_code", "sys_post", ["post_code"], unique=True)

    op.create_table(
        "sys_user_role",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )
    op.create_index("ix_sys_user_role_role_id", "sys_user_role", ["role_id"])

    op.create_table(
        "sys_user_post",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("post_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "post_id"),
    )

    op.create_table(
        "sys_role_menu",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("menu_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("role_id", "menu_id"),
    )
    op.create_index("ix_sys_role_menu_menu_id", "sys_role_menu", ["menu_id"])

    op.create_table(
        "sys_role_dept",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("dept_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("role_id", "dept_id"),
    )

    op.create_table(
        "sys_oper_log",
        sa.Column("oper_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("business_type", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("request_method", sa.String(), nullable=False),
        sa.Column("operator_type", sa.Integer(), nullable=False),
        sa.Column("oper_name", sa.String(), nullable=False),
        sa.Column("dept_name", sa.String(), nullable=True),
        sa.Column("oper_url", sa.String(), nullable=False),
        sa.Column("oper_ip", sa.String(), nullable=False),
        sa.Column("oper_location", sa.String(), nullable=False),
        sa.Column("oper_param", sa.Text(), nullable=True),
        sa.Column("json_result", sa.Text(), nullable=True),
        sa.Column("status", sa.Integer(), nullable=False),
        sa.Column("error_msg", sa.Text(), nullable=True),
        sa.Column("cost_time", sa.Integer(), nullable=False),
        sa.Column("oper_time", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("oper_id"),
    )
    op.create_index("ix_sys_oper_log_oper_name", "sys_oper_log", ["oper_name"])
    op.create_index("ix_sys_oper_log_oper_time", "sys_oper_log", ["oper_time"])


def downgrade() -> None:
    op.drop_index("ix_sys_oper_log_oper_time", table_name="sys_oper_log")
    op.drop_index("ix_sys_oper_log_oper_name", table_name="sys_oper_log")
    op.drop_table("sys_oper_log")
    op.drop_table("sys_role_dept")
    op.drop_index("ix_sys_role_menu_menu_id", table_name="sys_role_menu")
    op.drop_table("sys_role_menu")
    op.drop_table("sys_user_post")
    op.drop_index("ix_sys_user_role_role_id", table_name="sys_user_role")
    op.drop_table("sys_user_role")
    op.drop_index("ix_sys_post_post_code", table_name="sys_post")
    op.drop_table("sys_post")
    op.drop_index("ix_sys_menu_parent_id", table_name="sys_menu")
    op.drop_table("sys_menu")
    op.drop_index("ix_sys_role_role_key", table_name="sys_role")
    op.drop_index("ix_sys_role_role_name", table_name="sys_role")
    op.drop_table("sys_role")
    op.drop_index("ix_sys_user_user_name", table_name="sys_user")
    op.drop_index("ix_sys_user_dept_id", table_name="sys_user")
    op.drop_table("sys_user")
    op.drop_index("ix_sys_dept_parent_id", table_name="sys_dept")
    op.drop_table("sys_dept")
