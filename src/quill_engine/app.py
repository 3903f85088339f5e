"""FastAPI application factory for Quill-Engine."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quill_engine.common.config import get_settings
from quill_engine.common.exceptions import QuillError
from quill_engine.common.logging import setup_logging
from quill_engine.common.schemas import ErrorResponse, HealthResponse


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from quill_engine.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(QuillError)
    async def quill_error_handler(request: Request, exc: QuillError):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(detail=exc.message, code=exc.code).model_dump(),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from quill_engine.organizations.router import router as organization_router
    from quill_engine.documents.router import router as document_router
    from quill_engine.audit.router import router as audit_router
    from quill_engine.templates.router import router as template_router
    from quill_engine.routing.router import router as signing_router

    prefix = settings.api_prefix
    app.include_router(organization_router, prefix=prefix)
    app.include_router(document_router, prefix=prefix)
    app.include_router(audit_router, prefix=prefix)
    app.include_router(template_router, prefix=prefix)
    app.include_router(signing_router, prefix=prefix)

    return app
