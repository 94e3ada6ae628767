"""
Blueprint Engine Application
FastAPI app wiring the session cache, thread catalog and v1 routes.
"""
from contextlib import asynccontextmanager

import psutil
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables before config is read
load_dotenv()

from blueprint_engine.api.v1 import router as v1_router  # noqa: E402
from blueprint_engine.config import config  # noqa: E402
from blueprint_engine.errors import DatasetUnavailableError, InternalInvariantError  # noqa: E402
from blueprint_engine.schemas import HealthResponse  # noqa: E402
from blueprint_engine.services.cache import ImageSessionCache  # noqa: E402
from blueprint_engine.services.colors.threads import ThreadCatalog  # noqa: E402
from blueprint_engine.utils.logging import get_logger  # noqa: E402
from blueprint_engine.utils.metrics import get_metrics  # noqa: E402


def init_state(app: FastAPI):
    """Create the image cache and load the thread catalog."""
    logger = get_logger()
    app.state.image_cache = ImageSessionCache(max_entries=config.CACHE_MAX_ENTRIES)
    try:
        app.state.thread_catalog = ThreadCatalog.load(config.DMC_DATASET_PATH)
    except DatasetUnavailableError as e:
        # Serve without thread matching
        logger.error("Thread dataset unavailable", extra={"error": str(e)})
        app.state.thread_catalog = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_state(app)
    get_logger().info("Blueprint Engine started", extra={"version": config.VERSION})
    yield


app = FastAPI(
    title="Blueprint Engine",
    description="Turns photos into paint-by-number blueprints with DMC thread matching",
    version=config.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins() or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.exception_handler(InternalInvariantError)
async def internal_invariant_handler(request: Request, exc: InternalInvariantError):
    get_logger().error("Internal invariant violated", extra={"path": request.url.path, "error": str(exc)})
    get_metrics().increment_counter("internal_errors_total")
    return JSONResponse(
        status_code=500,
        content={"detail": {"error": "internal", "message": str(exc)}},
    )


@app.get("/healthz", response_model=HealthResponse)
def health_check(request: Request):
    """Service health with dataset, cache and memory stats."""
    catalog = getattr(request.app.state, "thread_catalog", None)
    cache = request.app.state.image_cache
    memory_mb = psutil.Process().memory_info().rss / (1024 * 1024)

    return HealthResponse(
        ok=True,
        version=config.VERSION,
        service=config.SERVICE_NAME,
        uptime_sec=round(get_metrics().get_uptime_seconds(), 3),
        datasets={"dmc": len(catalog) if catalog is not None else 0},
        cache=cache.stats(),
        memory_mb=round(memory_mb, 2),
    )


@app.get("/metrics/summary")
def metrics_summary():
    """In-process counters and timing percentiles."""
    if not config.METRICS_ENABLED:
        return {"enabled": False}
    return get_metrics().get_summary()


@app.get("/")
def root():
    return {
        "message": "Blueprint Engine API",
        "version": config.VERSION,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("blueprint_engine.main:app", host="0.0.0.0", port=8000)
