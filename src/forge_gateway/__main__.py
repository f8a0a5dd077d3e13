"""Gateway package CLI entry point."""

from __future__ import annotations

import argparse
import json

import uvicorn

from .logging import configure_logging
from .providers import ProviderRegistry
from .settings import get_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Forge provider gateway API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (development only).",
    )
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="Print the resolved provider catalog and exit.",
    )
    return parser.parse_args(args=argv)


def main(argv: list[str] | None = None) -> int:
    """Run the FastAPI gateway, or list the usable providers."""

    args = parse_args(argv)
    if args.list_providers:
        settings = get_settings()
        configure_logging(settings.log_level)
        catalog = ProviderRegistry(settings).catalog()
        print(
            json.dumps(
                {
                    "active": catalog.active_provider_id,
                    "providers": [entry.id for entry in catalog.providers],
                }
            )
        )
        return 0

    uvicorn.run(
        "forge_gateway.app:create_app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        factory=True,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
