"""
Entry point: ``python -m src.main api|worker|watch|chat``.
"""

import argparse
import logging
import sys
from typing import List, Optional

from src.config import settings


def setup_logging(level: str = "INFO") -> None:
    """Install a stdout handler on the root logger."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)
    root.setLevel(level.upper())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="brain", description="Question answering over your local files")
    subparsers = parser.add_subparsers(dest="command", required=True)

    api = subparsers.add_parser("api", help="Run the HTTP API")
    api.add_argument("--host", default="0.0.0.0")
    api.add_argument("--port", type=int, default=3000)

    worker = subparsers.add_parser("worker", help="Run the ingest queue worker")
    worker.add_argument("--burst", action="store_true", help="Exit once the queue is empty")

    subparsers.add_parser("watch", help="Scan and watch local files, posting changes to the API")

    chat = subparsers.add_parser("chat", help="Ask questions through the HTTP API")
    chat.add_argument("--url", default="http://localhost:3000/ai/ask")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.logging.log_level)

    if args.command == "api":
        import uvicorn

        from src.api_app import create_app

        uvicorn.run(create_app(settings=settings), host=args.host, port=args.port, log_level="info")
    elif args.command == "worker":
        from src.ingest_queue import run_worker

        run_worker(settings, burst=args.burst)
    elif args.command == "watch":
        from src.file_watcher import BrainWatcher

        BrainWatcher(settings.watcher).run_forever()
    elif args.command == "chat":
        from src.chat_client import ChatClient

        client = ChatClient(args.url)
        try:
            client.run()
        finally:
            client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
