"""Gateway CLI entry point."""

from __future__ import annotations

import argparse
import os
import sys


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gateway",
        description="Authenticated order-submission gateway for the Polymarket CLOB",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        default="config",
        help="Config directory path (default: config)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Environment name (default: from GATEWAY_ENV)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Bind address (default: server.host from config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Bind port (default: server.port from config)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        default=False,
        help="Validate config and builder credentials, then exit.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    from src.api.dependencies import build_services
    from src.config.loader import ConfigError, ConfigLoader

    config = ConfigLoader(config_dir=args.config_dir, env=args.env or os.environ.get("GATEWAY_ENV"))
    try:
        config.load()
        services = build_services(config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.check_config:
        print(f"Configuration OK (env: {config.env})")
        return 0

    import uvicorn

    from src.api.app import create_app

    host = args.host or config.get("server.host", "127.0.0.1")
    port = args.port or int(config.get("server.port", 8000))
    print(f"Starting gateway on {host}:{port} (env: {config.env})")
    uvicorn.run(create_app(services), host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
