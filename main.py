import sys
import logging
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from datastory.api.dependencies import limiter
from datastory.api.routes import router
from datastory.api.metrics import router as metrics_router
from datastory.api.story import router as story_router
from datastory.core.config import get_settings
from datastory.core.errors import DataStoryError, ErrorCodes, get_error_response
from datastory.core.logging import configure_logging
from datastory.core.middleware import CorrelationIDMiddleware, TimeoutMiddleware

# Load environment variables
load_dotenv()

# Load and validate configuration
try:
    settings = get_settings()
except Exception as e:
    # Basic logger for startup errors
    logging.basicConfig(level=logging.ERROR)
    logging.getLogger(__name__).error(f"Failed to load configuration: {e}")
    sys.exit(1)

configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Data Story API",
    description="Turn tabular data files into statistics, charts, insights and news story drafts",
    version="1.0.0"
)

# Store limiter and settings in app state for use in routes
app.state.limiter = limiter
app.state.settings = settings


def data_story_error_handler(request: Request, exc: DataStoryError):
    """Render pipeline failures as localized, structured error responses."""
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    error_info = exc.to_response(request.app.state.settings.locale)
    error_info['correlation_id'] = correlation_id
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"{type(exc).__name__} ({exc.status_code}) on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_info,
        headers={"X-Correlation-ID": correlation_id}
    )


def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded with structured error response."""
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    error_info = get_error_response(ErrorCodes.RATE_LIMIT_EXCEEDED, locale=request.app.state.settings.locale)
    error_info['correlation_id'] = correlation_id
    return JSONResponse(
        status_code=429,
        content=error_info,
        headers={
            "Retry-After": str(getattr(exc, 'retry_after', None) or 60),
            "X-Correlation-ID": correlation_id
        }
    )


app.add_exception_handler(DataStoryError, data_story_error_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Add middleware in order (last added is first executed)
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"]
)
# Outermost, so every request and log record carries a correlation id
app.add_middleware(CorrelationIDMiddleware)

logger.info(f"CORS allowed origins: {settings.allowed_origins_list}")

app.include_router(router, prefix="/api")
app.include_router(metrics_router, prefix="/api")
app.include_router(story_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Data Story API is running"}

logger.info("Application started successfully")
