# src/wpfleet/main.py

import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from wpfleet.api.routes import router
from wpfleet.config import Settings
from wpfleet.engine.job_manager import JobManager
from wpfleet.engine.storage import MemStorage, Storage
from wpfleet.tools.simulated import SimulatedExecutor
from wpfleet.utils.seed import seed_store


def build_store(settings: Settings) -> Storage:
    if settings.uses_database:
        from wpfleet.engine.sql_storage import SqlStorage
        return SqlStorage(settings.database_url)
    return MemStorage()


def create_app(settings: Optional[Settings] = None, store: Optional[Storage] = None,
               job_manager: Optional[JobManager] = None) -> FastAPI:
    """Application factory. The store and job manager are injected for tests."""
    settings = settings or Settings()

    # Configure structured logging
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )

    if store is None:
        store = build_store(settings)
        if settings.seed_demo_data:
            seed_store(store, settings.admin_password)
    if job_manager is None:
        executor = SimulatedExecutor(success_rate=settings.update_success_rate,
                                     delay_scale=settings.step_delay_scale)
        job_manager = JobManager(store, executor, exclusive_site_runs=settings.exclusive_site_runs)

    app = FastAPI(title="WP Fleet Maintenance")
    app.state.settings = settings
    app.state.store = store
    app.state.job_manager = job_manager

    @app.middleware("http")
    async def add_trace_id_and_log(request: Request, call_next):
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id
        logging.info(f"[trace_id={trace_id}] Incoming request: {request.method} {request.url}")
        try:
            response = await call_next(request)
        except Exception as exc:
            logging.error(f"[trace_id={trace_id}] Unhandled error: {exc}")
            return JSONResponse(
                status_code=500,
                content={"message": "Internal server error", "trace_id": trace_id}
            )
        response.headers["X-Trace-Id"] = trace_id
        return response

    # added last so it wraps the trace middleware and sessions are available in routes
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret,
                       session_cookie=settings.session_cookie)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
        logging.error(f"[trace_id={trace_id}] Exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error", "trace_id": trace_id}
        )

    app.include_router(router)

    @app.on_event("startup")
    def on_startup():
        logging.info("WP Fleet API started.")

    return app


def run():
    import uvicorn
    uvicorn.run("wpfleet.main:app", host="0.0.0.0", port=8000)


app = create_app()
