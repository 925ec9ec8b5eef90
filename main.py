"""BootHillGM decision engine: dev launcher. Serves the engine API."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "13015"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def main():
    parser = argparse.ArgumentParser(description="BootHillGM decision engine launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config file merged over the defaults")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server when source files change")
    args = parser.parse_args()

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The app factory reads these, including under --reload
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())
    if args.config:
        os.environ["BOOTHILL_CONFIG"] = str(args.config.resolve())

    print(f"Starting decision engine on http://localhost:{PORT} ...")
    uvicorn.run(
        "boothill_gm.api.app:create_app",
        factory=True,
        host=HOST,
        port=PORT,
        reload=args.reload,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
