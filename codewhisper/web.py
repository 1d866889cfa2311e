"""
CodeWhisper - Local API Server Entry Point

Run with: python -m codewhisper.web
          python -m codewhisper.web --port 8765
"""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from codewhisper.api import create_app
from codewhisper.core import load_config, setup_logging
from codewhisper.engine import CodeWhisperEngine

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


def main() -> None:
    """Main entry point for the API server."""
    parser = argparse.ArgumentParser(description="CodeWhisper local API server")
    parser.add_argument("--host", default="127.0.0.1", choices=LOOPBACK_HOSTS,
                        help="Loopback address to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8765, help="Port to bind to (default: 8765)")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    args = parser.parse_args()

    config = load_config(args.config)

    log_file = Path(config.logging.log_file) if config.logging.log_file else None
    setup_logging(
        level=config.logging.level,
        log_file=log_file,
        console=config.logging.console,
        json_format=config.logging.json_format,
    )

    logger.info("Starting CodeWhisper API server")
    app = create_app(lambda: CodeWhisperEngine(config))

    print(f"CodeWhisper listening on http://{args.host}:{args.port} (Ctrl+C to stop)")

    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level="info")
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
