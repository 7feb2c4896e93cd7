"""CLI entry point for launching the Todo API with uvicorn."""

import argparse
from typing import List, Optional

import uvicorn


def main(argv: Optional[List[str]] = None) -> None:
    """Run the API server.

    The store location follows config/app_config.yaml and TODO_DATA_DIR,
    the same as the CLI and the reminder daemon.
    """
    parser = argparse.ArgumentParser(description="Todo Reminder API server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Listen port")
    parser.add_argument("--reload", action="store_true", help="Reload on source changes (development)")
    args = parser.parse_args(argv)

    uvicorn.run(
        "src.server.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=["src"] if args.reload else None,
    )


if __name__ == "__main__":
    main()
