from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.config import get_settings
from ..core.logging_setup import setup_logging


def _load_env_files() -> None:
    """Load .env from the working directory, then from the repository root without overriding."""
    load_dotenv()
    root_env = Path(__file__).resolve().parents[2] / ".env"
    if root_env.exists():
        load_dotenv(dotenv_path=root_env, override=False)


_load_env_files()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    yield


app = FastAPI(title="stepgen", version="0.3.0", lifespan=lifespan)

# adjust via env ALLOW_ORIGINS
allow_origins = os.getenv("ALLOW_ORIGINS", "http://localhost:5178").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in allow_origins if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .routers import compile as r_compile
from .routers import health as r_health
from .routers import knowledge as r_knowledge
from .routers import variants as r_variants

app.include_router(r_health.router)
app.include_router(r_compile.router)
app.include_router(r_knowledge.router)
app.include_router(r_variants.router)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8001"))
    uvicorn.run("stepgen.api.main:app", host=host, port=port, reload=False)
