"""Taleforge launcher. Starts the API server with uvicorn."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "13013"))


def main():
    parser = argparse.ArgumentParser(description="Taleforge server")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Seed the demo story before starting")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=BACKEND_PORT)
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # backend.app reads DATA_DIR at import time
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    if args.demo:
        from backend.demo import create_demo_story
        from taleforge.storage import JsonStoryRepository
        data_dir = args.data_dir or ROOT / "data"
        story = create_demo_story(JsonStoryRepository(data_dir))
        print(f"Seeded demo story {story.id} ({story.title})")

    print(f"Starting backend on http://localhost:{args.port} ...")
    uvicorn.run("backend.app:app", host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
