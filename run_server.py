#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py --workers 4
    Gunicorn:     python run_server.py --gunicorn
                  (same as: gunicorn opsboard.main:app -c gunicorn.conf.py)
"""

import argparse
import os
import subprocess

import uvicorn

from opsboard.config import get_settings


def run_dev_server(host: str, port: int) -> None:
    """Single process with auto-reload."""
    uvicorn.run(
        "opsboard.main:app",
        host=host,
        port=port,
        reload=True,
        reload_dirs=["opsboard"],
        log_level="debug",
    )


def run_uvicorn(host: str, port: int, workers: int) -> None:
    uvicorn.run(
        "opsboard.main:app",
        host=host,
        port=port,
        workers=workers,
        log_level=get_settings().monitoring.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn() -> None:
    subprocess.run(["gunicorn", "opsboard.main:app", "-c", "gunicorn.conf.py"], check=True)


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Commerce Ops Analytics API Server")
    parser.add_argument("--dev", action="store_true", help="Development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn with Uvicorn workers")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    parser.add_argument("--workers", type=int, default=int(os.getenv("WORKERS", 2)))
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.host, args.port)
    elif args.gunicorn:
        os.environ.setdefault("BIND", f"{args.host}:{args.port}")
        run_gunicorn()
    else:
        run_uvicorn(args.host, args.port, args.workers)
