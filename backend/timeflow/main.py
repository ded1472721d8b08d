import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timeflow.core.timesheets.exceptions import TimesheetError, ValidationFailure
from timeflow.core.timesheets.router import router as timesheets_router
from timeflow.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


async def timesheet_error_handler(request: Request, exc: TimesheetError) -> JSONResponse:
    body = {"code": exc.code, "detail": exc.message}
    if isinstance(exc, ValidationFailure):
        body["errors"] = exc.errors
    logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=body)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Timeflow API",
        version="0.1.0",
        docs_url="/docs" if settings.APP_DEBUG else None,
        redoc_url="/redoc" if settings.APP_DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_DEBUG else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TimesheetError, timesheet_error_handler)

    app.include_router(timesheets_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
