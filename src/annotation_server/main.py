"""
Main entry point for the Segment Annotator server.

Usage:
    python -m src.annotation_server.main --storage-dir ./local_data/objects
    python -m src.annotation_server.main --storage-dir ./objects --port 8080
"""

import argparse
import logging
from pathlib import Path

import uvicorn

from .api import app, init_app
from .audio_processing import is_ffmpeg_installed
from .config import AnnotatorConfig

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Segment Annotator - label fixed-length segments of an audio corpus"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--storage-dir",
        type=str,
        default=None,
        help="Object store directory (default: $ANNOTATOR_STORAGE_DIR or local_data/objects)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="SQLite database file (default: $ANNOTATOR_DB_PATH or /data/annotations.db)"
    )
    parser.add_argument(
        "--corpus-root",
        type=str,
        default=None,
        help="Key prefix of the corpus folders (default: fma_small)"
    )

    args = parser.parse_args()

    config = AnnotatorConfig.from_env()
    if args.storage_dir:
        config.storage_dir = Path(args.storage_dir)
    if args.db_path:
        config.db_path = Path(args.db_path)
    if args.corpus_root:
        config.corpus_root = args.corpus_root
    if config.public_url == AnnotatorConfig.public_url:
        config.public_url = f"http://{args.host}:{args.port}"

    storage_dir = config.storage_dir
    if storage_dir.exists() and not storage_dir.is_dir():
        print(f"Error: Not a directory: {storage_dir}")
        return 1

    if not is_ffmpeg_installed(config.ffmpeg_binary):
        logger.warning(f"{config.ffmpeg_binary} not found on PATH; annotation commits will fail")

    init_app(config)

    print(f"\n{'='*60}")
    print("Segment Annotator")
    print(f"{'='*60}")
    print(f"Object store:   {storage_dir.resolve()}")
    print(f"Corpus:         {config.corpus_root}/")
    print(f"Server:         http://{args.host}:{args.port}/")
    print(f"{'='*60}\n")

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
