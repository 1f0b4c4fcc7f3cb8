"""CLI entry point."""

import sys


def main() -> None:
    """Serve the API with uvicorn on API_HOST:API_PORT."""
    import uvicorn

    from .settings import settings

    try:
        uvicorn.run("funnee.main:app", host=settings.api_host, port=settings.api_port)
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    main()
