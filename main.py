"""Main FastAPI application"""
import logging
import logging.config
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from config import Settings
from routes import router as api_router

# --- Add slowapi imports ---
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

UPLOAD_ENDPOINT_PATHS = ("/transactions/bulk", "/transactions/import")


def build_logging_config(level: str = "INFO") -> dict:
    """Unified logging configuration with Rich for the app and uvicorn."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                # RichHandler renders its own timestamp and level columns
                "format": "%(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "default": {
                "class": "rich.logging.RichHandler",
                "formatter": "default",
                "level": "DEBUG",
                "rich_tracebacks": True,
                "show_time": True,
                "show_path": False,
                "log_time_format": "%Y-%m-%d %H:%M:%S",
                "markup": False,
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "": { # Root logger for our application
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
        },
    }


logger = logging.getLogger(__name__)


# --- Middleware for Upload Size Limit ---
class LimitUploadSizeMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_upload_size: int):
        super().__init__(app)
        self.max_upload_size = max_upload_size

    async def dispatch(self, request: Request, call_next):
        if request.url.path in UPLOAD_ENDPOINT_PATHS:
            content_length_header = request.headers.get("content-length")
            if content_length_header:
                try:
                    content_length = int(content_length_header)
                except ValueError:
                    logger.warning("Upload rejected: Invalid Content-Length header.")
                    return JSONResponse({"error": "Invalid Content-Length header."}, status_code=400)
                if content_length > self.max_upload_size:
                    logger.warning(f"Upload rejected: size {content_length} exceeds limit {self.max_upload_size}.")
                    return JSONResponse(
                        {"error": f"Maximum upload size limit ({self.max_upload_size / (1024*1024):.1f} MB) exceeded."},
                        status_code=413,
                    )
            # Chunked bodies without Content-Length are not checked upfront

        response = await call_next(request)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    # Startup: Connect to MongoDB
    logger.info(f"Connecting to MongoDB database '{settings.db_name}'...")
    client = None
    try:
        client = AsyncIOMotorClient(settings.mongodb_uri)
        await client.admin.command('ping')
        app.state.db_client = client
        app.state.transactions_collection = client[settings.db_name].get_collection(settings.collection_name)
        logger.info(f"Successfully connected to MongoDB database: {settings.db_name}")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        app.state.db_client = client
        app.state.transactions_collection = None

    yield # Application runs here

    # Shutdown: Close MongoDB connection
    if app.state.db_client is not None:
        logger.info("Closing MongoDB connection...")
        app.state.db_client.close()
        logger.info("MongoDB connection closed.")


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Renders every HTTP error as {"error": message}."""
    detail = exc.detail if isinstance(exc.detail, str) else jsonable_encoder(exc.detail)
    return JSONResponse({"error": detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
    messages = []
    for err in exc.errors():
        # Drop the leading "body" so paths read like record fields
        location = [str(p) for p in err.get("loc", ()) if p != "body"]
        messages.append(f"{'.'.join(location) or 'body'}: {err.get('msg')}")
    logger.warning(f"Request to {request.url.path} failed validation: {messages}")
    return JSONResponse({"error": "; ".join(messages)}, status_code=422)


async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
    """Last resort for errors no route translated, still as {"error": message}."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse({"error": str(exc) or exc.__class__.__name__}, status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Builds the application around an explicit, immutable settings object."""
    settings = settings or Settings.from_env()
    logging.config.dictConfig(build_logging_config(settings.log_level))

    app = FastAPI(
        title="Money Tracker API",
        description="API for recording income and expenses, importing CSV statements and summarizing spending.",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.db_client = None
    app.state.transactions_collection = None

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # --- Rate Limiter (disabled unless RATE_LIMIT is set) ---
    default_limits = [settings.rate_limit] if settings.rate_limit else []
    app.state.limiter = Limiter(key_func=get_remote_address, default_limits=default_limits)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    if settings.rate_limit:
        logger.info(f"Rate limiting enabled: {settings.rate_limit}")
        app.add_middleware(SlowAPIMiddleware)

    # --- Add Middleware (Order Matters) ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LimitUploadSizeMiddleware, max_upload_size=settings.max_upload_size)

    app.include_router(api_router, tags=["transactions"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=5000,
        reload=True
    )
