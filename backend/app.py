import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from taleforge.config import get_config
from taleforge.llm import LLM, llm_from_config
from taleforge.pipeline import NarrativeGenerator, Orchestrator, StateReconciler
from taleforge.service import StoryService
from taleforge.storage import JsonStoryRepository

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def build_orchestrator(config: dict, llm: LLM | None = None) -> Orchestrator:
    """Wire the pipeline from config. An explicit `llm` replaces the configured backend."""
    generator = NarrativeGenerator(llm or llm_from_config(config["llm"]))
    return Orchestrator(
        generator,
        StateReconciler(),
        max_attempts=int(config["max_attempts"]),
        generation_timeout=float(config["generation_timeout"]),
    )


def create_app(data_dir: Path | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    resolved.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="Taleforge")
    app.state.data_dir = resolved
    app.state.llm_override = llm
    app.state.service = StoryService(
        JsonStoryRepository(resolved),
        build_orchestrator(get_config(resolved), llm),
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
