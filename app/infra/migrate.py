from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def run_upgrade_head(revision: str = "head") -> None:
    """Apply schema migrations and the default seed rows."""
    config = Config(str(ALEMBIC_INI))
    command.upgrade(config, revision)
    logger.info("database upgraded to %s", revision)


if __name__ == "__main__":
    run_upgrade_head()
