"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.dependencies import logger
from app.recent import router as recent_router
from app.recent.ledger import RecencyLedger
from app.recent.store import load_entries, save_entries
from app.search import router as search_router
from app.search.service import SearchEngine
from app.search.session import SearchOptions

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the search engine on startup; persist history on shutdown."""
    ledger = RecencyLedger(capacity=settings.recent_capacity)
    ledger.load(load_entries(settings.recent_store_path))
    app.state.engine = SearchEngine(SearchOptions.from_settings(settings), ledger)
    try:
        yield
    finally:
        engine: SearchEngine = app.state.engine
        await engine.shutdown()
        save_entries(settings.recent_store_path, engine.ledger.export())


app = FastAPI(title="Fuzzy File Search", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router)
app.include_router(recent_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "0.1.0",
        "search_root": str(settings.search_root),
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {"name": "Fuzzy File Search", "version": "0.1.0", "docs": "/docs"}


logger.info("app_startup", extra={"host": settings.host, "port": settings.port})
