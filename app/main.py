import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.dependencies import get_search_index
from app.exceptions import BlogApiError, InvalidRequest
from app.http_headers import entity_error_headers
from app.middleware import TimingMiddleware
from app.reindex_queue import reindex_queue
from app.routers import blogs, metrics, posts, users
from app.search import SearchIndex, search_index

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: both backends are optional; writes degrade without them.
    await search_index.connect()
    await reindex_queue.connect()
    yield
    # Shutdown
    await search_index.disconnect()
    await reindex_queue.disconnect()

app = FastAPI(
    title="Blog API",
    description="Blog posts and tags with a mirrored full-text search index",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Link", "X-Total-Count", "Location"],
)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "title": exc.message,
            "status": exc.status_code,
            "entityName": exc.entity,
            "errorKey": exc.error_key,
            "message": f"error.{exc.error_key}",
        },
        headers=entity_error_headers(exc.entity, exc.error_key),
    )


@app.exception_handler(BlogApiError)
async def blog_api_error_handler(request: Request, exc: BlogApiError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s %r", type(exc).__name__, request.method, request.url.path, exc.message, exc.context)
    return JSONResponse(
        status_code=exc.status_code,
        content={"title": exc.message, "status": exc.status_code},
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"title": "Storage error", "status": 500},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "title": "Method argument not valid",
            "status": 400,
            "message": "error.validation",
            "fieldErrors": jsonable_encoder(exc.errors()),
        },
    )


# Routers
app.include_router(posts.router)
app.include_router(users.router)
app.include_router(blogs.router)
app.include_router(metrics.router)

@app.get("/health")
async def health(index: SearchIndex = Depends(get_search_index)):
    return {
        "status": "healthy",
        "version": "1.0.0",
        "search_index": "up" if await index.ping() else "down",
    }
