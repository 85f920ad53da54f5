#!/usr/bin/env python3
"""CLI entry point for the price tracker."""

import argparse
import asyncio
import logging
import subprocess
import sys
import time

from . import config
from .coupang import CoupangClient, CoupangError
from .db import PriceDatabase
from .init_data import initialize_data
from .price import PriceService
from .scheduler import PriceUpdateScheduler

RESTART_DELAY_SECONDS = 2


def build_service() -> PriceService:
    return PriceService(PriceDatabase(), CoupangClient())


def print_products(products: list[dict]) -> None:
    """Print a short product summary."""
    for i, p in enumerate(products[:10], 1):
        print(f"  {i}. {p['name']} - {p['current_price']} ({p['id']})")
    if len(products) > 10:
        print(f"  ... and {len(products) - 10} more")


def server_command(which: str, port: int) -> list[str]:
    return [sys.executable, "-m", "cooshop.webapp.run", which, "--host", "0.0.0.0", "--port", str(port)]


def run_serve() -> int:
    """Keep the backend and frontend servers up, relaunching whichever one exits."""
    import signal

    commands = {
        "backend": server_command("backend", config.BACKEND_PORT),
        "frontend": server_command("frontend", config.FRONTEND_PORT),
    }
    children: dict[str, subprocess.Popen] = {}
    stopping = False

    def request_stop(signum, frame):
        nonlocal stopping
        stopping = True

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    print(f"backend  -> http://localhost:{config.BACKEND_PORT}")
    print(f"frontend -> http://localhost:{config.FRONTEND_PORT}")
    print("Ctrl+C stops both.")

    while not stopping:
        for name, command in commands.items():
            child = children.get(name)
            if child is None:
                children[name] = subprocess.Popen(command)
            elif child.poll() is not None:
                print(f"[{name}] exited ({child.returncode}); relaunching in {RESTART_DELAY_SECONDS}s")
                time.sleep(RESTART_DELAY_SECONDS)
                children[name] = subprocess.Popen(command)
        time.sleep(1)

    for name, child in children.items():
        if child.poll() is None:
            print(f"[{name}] stopping")
            child.terminate()
            try:
                child.wait(timeout=5)
            except subprocess.TimeoutExpired:
                child.kill()

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Coupang affiliate price tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cooshop.cli --serve              # Run backend + frontend (restarts on crash)
  python -m cooshop.cli --backend            # Run the JSON API with the price updater
  python -m cooshop.cli --frontend           # Run the server-rendered frontend
  python -m cooshop.cli --init-data          # Seed best sellers into an empty database
  python -m cooshop.cli --update-once        # Refresh the oldest product once
  python -m cooshop.cli --search "airpods"   # Search and store products
        """,
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--serve", action="store_true", help="Run backend and frontend together")
    group.add_argument("--backend", action="store_true", help="Run the backend API")
    group.add_argument("--frontend", action="store_true", help="Run the frontend")
    group.add_argument("--init-data", action="store_true", help="Seed the database with best sellers")
    group.add_argument("--update-once", action="store_true", help="Refresh the oldest product")
    group.add_argument("--search", "-s", metavar="KEYWORD", help="Search products and store them")

    args = parser.parse_args()

    if args.serve:
        return run_serve()

    if args.backend or args.frontend:
        from .webapp.run import serve
        which = "backend" if args.backend else "frontend"
        port = config.BACKEND_PORT if args.backend else config.FRONTEND_PORT
        serve(which, "0.0.0.0", port)
        return 0

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    service = build_service()

    if args.init_data:
        saved = asyncio.run(initialize_data(service))
        print(f"Saved {saved} products ({service.db.count()} in database)")
        return 0

    if args.update_once:
        outcome = asyncio.run(PriceUpdateScheduler(service).run_once())
        print(f"Update result: {outcome}")
        return 0 if outcome in ("updated", "missed", "idle") else 1

    try:
        products = asyncio.run(service.search_and_save_products(args.search))
    except CoupangError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Saved {len(products)} products for '{args.search}':")
    print_products(products)
    return 0


if __name__ == "__main__":
    sys.exit(main())
