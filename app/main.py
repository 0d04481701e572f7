import os
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from dotenv import load_dotenv

load_dotenv()

from app.routes import (
    auth_router,
    records_router,
    review_router,
    settings_router,
)
from app.ai_summary import get_summary_generator
from app.background_jobs import scheduler
from app.database import SessionLocal, init_db, DATABASE_URL
from app.services.errors import (
    GenerationFailed,
    InvalidImport,
    NoData,
    StoreUnavailable,
    Unauthenticated,
)
from app.services.local_store import LocalRecordStore
from app.services.reconciliation import ReconciliationEngine
from app.services.record_store import SqlRecordStore

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "your-super-secret-key-change-in-production-min-32-chars")
SESSION_EXPIRE_MINUTES = int(os.getenv("SESSION_EXPIRE_MINUTES", "480"))


def build_store(backend: str):
    """Record store for the configured backend."""
    if backend == "local":
        path = os.getenv("LOCAL_STORE_PATH", "./data/journal.json")
        logger.info(f"Using local record store at {path}")
        return LocalRecordStore(path)
    if backend != "sql":
        raise RuntimeError(f"Unknown STORE_BACKEND '{backend}', expected 'sql' or 'local'")
    return SqlRecordStore(SessionLocal)


def create_app(store=None, generator=None, store_backend: str = None, poll_attempts: int = None,
               poll_interval: float = None) -> FastAPI:
    """Build the app. Tests inject a store and a fake generator."""
    store_backend = store_backend or os.getenv("STORE_BACKEND", "sql").lower()

    app = FastAPI(
        title="Daily Journal",
        description="Daily journal with AI summaries and monthly reviews",
        version="1.0.0"
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=SECRET_KEY,
        max_age=SESSION_EXPIRE_MINUTES * 60,
        same_site="lax",
    )

    # Include routers
    app.include_router(auth_router)
    app.include_router(records_router)
    app.include_router(review_router)
    app.include_router(settings_router)

    app.state.store_backend = store_backend

    @app.on_event("startup")
    async def on_startup():
        """Wire the store, generator and reconciliation engine for this process.

        With the SQL backend the database is initialized first; if that fails
        the app raises and stops with a clear error message.
        """
        if store is None and store_backend == "sql":
            try:
                init_db()
            except Exception as e:
                raise RuntimeError(
                    f"Database initialization failed for DATABASE_URL={DATABASE_URL}: {e}"
                ) from e

        app.state.store = store or build_store(store_backend)
        app.state.generator = generator or get_summary_generator()
        app.state.engine = ReconciliationEngine(
            app.state.store,
            app.state.generator,
            poll_attempts=poll_attempts or int(os.getenv("SUMMARY_POLL_ATTEMPTS", "20")),
            poll_interval=poll_interval if poll_interval is not None
            else float(os.getenv("SUMMARY_POLL_INTERVAL_SECONDS", "3")),
        )

        if store is None and store_backend == "sql":
            scheduler.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        scheduler.stop()
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.shutdown()

    # Error handlers
    @app.exception_handler(Unauthenticated)
    async def unauthenticated_handler(request: Request, exc: Unauthenticated):
        return JSONResponse({"detail": str(exc)}, status_code=401)

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse({"detail": "Storage is temporarily unavailable, please retry"}, status_code=503)

    @app.exception_handler(GenerationFailed)
    async def generation_failed_handler(request: Request, exc: GenerationFailed):
        logger.error(f"{request.method} {request.url.path} generation failed: {exc}")
        return JSONResponse({"detail": "Summary generation failed, please retry"}, status_code=502)

    @app.exception_handler(NoData)
    async def no_data_handler(request: Request, exc: NoData):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(InvalidImport)
    async def invalid_import_handler(request: Request, exc: InvalidImport):
        return JSONResponse({"detail": str(exc)}, status_code=400)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
