"""CLI tool for admin operations.

Usage:
    python -m dlmm_bot.cli serve [--host HOST] [--port PORT]
    python -m dlmm_bot.cli init-config
    python -m dlmm_bot.cli update-config '{"mirror_swap": {"enabled": false}}'
        (a running service reloads the file on its own)
    python -m dlmm_bot.cli positions [status]
"""

import sys

from dlmm_bot.config import settings


def serve(args: list[str]):
    """Run the API and engine under uvicorn."""
    import uvicorn

    host, port = "127.0.0.1", 8000
    if "--host" in args:
        host = args[args.index("--host") + 1]
    if "--port" in args:
        port = int(args[args.index("--port") + 1])
    uvicorn.run("dlmm_bot.main:app", host=host, port=port, log_level=settings.log_level.lower())


def init_config():
    """Write the default admin configuration document if none exists."""
    from pathlib import Path

    from dlmm_bot.schemas.admin_config import AdminConfig
    from dlmm_bot.services.admin_config import save_admin_config

    path = Path(settings.admin_config_path)
    if path.exists():
        print(f"Admin config already exists at {path}")
        sys.exit(1)
    save_admin_config(AdminConfig(), path)
    print(f"Default admin config written to {path}")


def update_config(args: list[str]):
    """Merge a JSON fragment into the stored admin config.

    A running service picks the change up within CONFIG_RELOAD_INTERVAL_SECONDS.
    """
    import json

    from pydantic import ValidationError

    from dlmm_bot.services.admin_config import load_admin_config, update_admin_config
    from dlmm_bot.utils.constants import CONFIG_RELOAD_INTERVAL_SECONDS

    if not args:
        print("Usage: python -m dlmm_bot.cli update-config '<json>'")
        sys.exit(1)
    load_admin_config()
    try:
        config = update_admin_config(json.loads(args[0]))
    except (json.JSONDecodeError, ValidationError) as e:
        print(f"Invalid admin config: {e}")
        sys.exit(1)
    print(config.model_dump_json(indent=2))
    print(f"A running service applies this within {CONFIG_RELOAD_INTERVAL_SECONDS}s")


def list_positions(args: list[str]):
    """Print stored positions."""
    from dlmm_bot.database import engine, create_db_and_tables
    from dlmm_bot.services.position_store import PositionStore

    create_db_and_tables()
    status = args[0] if args else None
    positions = PositionStore(engine).load(status=status)
    if not positions:
        print("No positions.")
        return
    for pos in positions:
        price = f"{pos.current_price:.4f}" if pos.current_price else "n/a"
        print(
            f"{pos.position_address}  {pos.status:<7} pool={pos.pool_address[:8]} "
            f"range=[{pos.lower_bound_price:.4f}, {pos.upper_bound_price:.4f}] "
            f"price={price} hedges={len(pos.hedge_swaps_history or [])}"
        )


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m dlmm_bot.cli <command>")
        print("Commands: serve, init-config, update-config, positions")
        sys.exit(1)

    command = sys.argv[1]
    args = sys.argv[2:]
    if command == "serve":
        serve(args)
    elif command == "init-config":
        init_config()
    elif command == "update-config":
        update_config(args)
    elif command == "positions":
        list_positions(args)
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
