"""
Bot Bu - Application Entry Point
=================================
FastAPI application factory plus a ``uvicorn`` launcher.

Run locally:
    python -m botbu.main
    uvicorn botbu.main:app --reload
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from botbu.src.api.dependencies import get_services
from botbu.src.api.routes import router
from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load the knowledge base and build shared services before serving."""
    services = get_services()
    logger.info("[APP] Pre-warming services...")
    kb = services.knowledge_base
    _ = services.rag_manager
    _ = services.tiered_answerer
    _ = services.rate_limiter
    logger.info("[APP] Ready: %s", kb.stats())

    yield

    services.clear()
    logger.info("[APP] Services released")


def create_app() -> FastAPI:
    app = FastAPI(title="Bot Bu", description="Binghamton University campus assistant (RAG + three-tier fallback)", version="1.0.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("botbu.main:app", host="0.0.0.0", port=8000)
