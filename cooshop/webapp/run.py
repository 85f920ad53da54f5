"""Run the backend API or the frontend server."""

import argparse
import logging

from .. import config

APP_FACTORIES = {
    "backend": "cooshop.webapp.app:create_app",
    "frontend": "cooshop.webapp.frontend:create_frontend_app",
}


def serve(which: str, host: str, port: int, reload: bool = False) -> None:
    """Run one of the apps with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        APP_FACTORIES[which],
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def main():
    """Run an app with uvicorn."""
    parser = argparse.ArgumentParser(description="Run the Cooshop web servers")
    parser.add_argument("app", nargs="?", choices=sorted(APP_FACTORIES), default="backend")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()

    default_port = config.BACKEND_PORT if args.app == "backend" else config.FRONTEND_PORT
    serve(args.app, args.host, args.port or default_port, reload=args.reload)


if __name__ == "__main__":
    main()
