#!/usr/bin/env python3
"""
Notebox -- personal notes and files behind password, TOTP and OAuth login.

Usage:
  python main.py
  python main.py --host 0.0.0.0 --port 9000
  python main.py --reload

Configuration comes from the environment or a .env file (see core/config.py).
At minimum set SECRET_KEY (32+ characters), or DEBUG=true for local use.
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="notebox",
        description="Run the Notebox API and web UI.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  DEBUG=true python main.py --reload
  SECRET_KEY=... DATABASE_URL=sqlite:///prod.db python main.py --host 0.0.0.0
        """,
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Bind port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args()

    uvicorn.run(
        "asgi:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
