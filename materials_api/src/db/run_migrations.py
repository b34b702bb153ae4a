"""
Programmatic Alembic migration runner.

Allows running migrations without an alembic.ini by configuring the script location
to this package's migrations directory. The database URL comes from
src.db.config.Settings (POSTGRES_* environment variables).

Usage examples:
    python -m src.db.run_migrations upgrade head
    python -m src.db.run_migrations downgrade -1
    python -m src.db.run_migrations stamp head
    python -m src.db.run_migrations history
"""

import sys
from pathlib import Path
from typing import Callable, Dict, List

from alembic import command
from alembic.config import Config


def build_config() -> Config:
    """Alembic Config pointing at the bundled migrations and the configured database."""
    from src.db.config import get_settings

    cfg = Config()
    script_location = Path(__file__).resolve().parent / "migrations"
    cfg.set_main_option("script_location", str(script_location))
    # Offline mode reads this URL; env.py builds its own async engine online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


_COMMANDS: Dict[str, Callable[[Config, List[str]], None]] = {
    "upgrade": lambda cfg, rest: command.upgrade(cfg, *(rest or ["head"])),
    "downgrade": lambda cfg, rest: command.downgrade(cfg, *(rest or ["-1"])),
    "stamp": lambda cfg, rest: command.stamp(cfg, *(rest or ["head"])),
    "history": lambda cfg, rest: command.history(cfg, *rest),
    "current": lambda cfg, rest: command.current(cfg, *rest),
    "heads": lambda cfg, rest: command.heads(cfg, *rest),
}


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Run an Alembic command with programmatic configuration."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("No Alembic arguments provided. Example: upgrade head")
        sys.exit(1)

    cmd, rest = args[0], args[1:]
    handler = _COMMANDS.get(cmd)
    if handler is None:
        print(f"Unsupported Alembic command: {cmd} (expected one of: {', '.join(sorted(_COMMANDS))})")
        sys.exit(2)
    handler(build_config(), rest)


if __name__ == "__main__":
    main()
