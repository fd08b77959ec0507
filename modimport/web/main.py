"""HTTP application entrypoint (composition-only)."""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from modimport.bootstrap import get_container
from modimport.web.routers import catalog_router, imports_router, system_router

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

container = get_container()

_cors_origins_raw = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173")
_cors_origins = [o.strip() for o in _cors_origins_raw.split(",") if o.strip()]

app = FastAPI(title="Mod Import Service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(catalog_router)
app.include_router(imports_router)


def run() -> None:
    """Serve the API with uvicorn (``modimport-serve``)."""
    host = os.getenv("MODIMPORT_HOST", "127.0.0.1")
    port = int(os.getenv("MODIMPORT_PORT", "8000"))
    logger.info("[Main] Serving on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")


__all__ = ["app", "run"]


if __name__ == "__main__":
    run()
