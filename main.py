# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

import models  # noqa: F401  (registers tables on Base.metadata)
from config import settings
from database import Base, engine
from errors import PipelineError, ExternalDependencyError
from routers.v1 import api_v1
from utils.flash import flash, is_form_request

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- Bootstrap ----------
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET)

# Static (optional)
try:
    app.mount("/static", StaticFiles(directory="static"), name="static")
except RuntimeError:
    logger.info("static/ not found, skipping mount")


def _error_response(request: Request, status_code: int, message: str, headers: dict | None = None):
    if is_form_request(request):
        flash(request, "error", message)
        return RedirectResponse(request.headers.get("referer") or "/", status_code=303)
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    err = ExternalDependencyError("Database is unavailable, please retry")
    return _error_response(request, err.status_code, err.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(request, exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    err = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in err.get("loc", ()))
    return _error_response(request, 400, f"{where}: {err.get('msg')}" if where else "Invalid request")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, 500, "Internal server error")


@app.get("/", include_in_schema=False)
def root():
    return RedirectResponse(url="/docs")


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok"}


app.include_router(api_v1, prefix="/api/v1")
