"""
Programmatic Alembic migration runner.

The tracker ships no alembic.ini; the script location is this package's migrations
directory and the URL comes from tracker.db.config.

Usage examples:
    python -m tracker.db.run_migrations upgrade head
    python -m tracker.db.run_migrations downgrade base
    python -m tracker.db.run_migrations current
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List

from alembic import command
from alembic.config import Config

from tracker.db.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# command name -> (alembic function, default arguments)
_COMMANDS: Dict[str, tuple[Callable[..., None], List[str]]] = {
    "upgrade": (command.upgrade, ["head"]),
    "downgrade": (command.downgrade, ["-1"]),
    "stamp": (command.stamp, ["head"]),
    "current": (command.current, []),
    "history": (command.history, []),
    "heads": (command.heads, []),
}


def build_config() -> Config:
    """Alembic config bound to the migrations directory and the configured database."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Offline mode reads this; env.py builds its own async engine when online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Run one Alembic command, e.g. ``main(["upgrade", "head"])``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        raise SystemExit(f"Usage: run_migrations <{'|'.join(_COMMANDS)}> [revision]")

    name, rest = args[0], args[1:]
    if name not in _COMMANDS:
        raise SystemExit(f"Unsupported Alembic command: {name}")

    func, defaults = _COMMANDS[name]
    logger.info("alembic %s %s", name, " ".join(rest or defaults))
    func(build_config(), *(rest or defaults))


if __name__ == "__main__":
    main()
