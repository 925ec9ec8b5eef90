import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from ..config import EngineConfig, load_config
from ..llm import LLM
from ..storage import Storage
from .routes import router

DEFAULT_DATA_DIR = Path.cwd() / "data"


def create_app(
    data_dir: Path | None = None,
    config: EngineConfig | None = None,
    llm: LLM | None = None,
) -> FastAPI:
    load_dotenv()
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    config_path = os.getenv("BOOTHILL_CONFIG")

    app = FastAPI(title="BootHillGM Decision Engine")
    app.state.storage = Storage(resolved)
    app.state.config = config or load_config(Path(config_path) if config_path else None)
    app.state.llm = llm
    app.state.services = {}
    app.include_router(router, prefix="/api")
    return app
