"""Command-line entry point: serve the route optimizer API with uvicorn."""

import argparse

import uvicorn

from routeoptimizer.config import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="route-optimizer",
        description="Asynchronous route optimization job service",
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Bind port (default: {settings.port})")
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=settings.debug,
        help="Reload on code changes (default: on in debug)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    # Jobs live in process memory, so a single worker serves the API.
    # log_config=None keeps uvicorn on the structlog handler set up by the app.
    uvicorn.run(
        "routeoptimizer.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_config=None,
    )


if __name__ == "__main__":
    main()
