from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from routers.rooms import rooms_router
from routers.admin import admin_router
from routers.proxy import proxy_router
from backend import build_room_store
from logging_config import get_logger, setup_logging
import httpx
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Redis when configured, otherwise the in-memory demo store. Handlers reach
    # it through backend.get_room_store.
    app.state.room_store = build_room_store()
    http_client = httpx.AsyncClient(timeout=10.0)
    app.state.http_client = http_client
    logger.info(f"Application started (store={app.state.room_store.backend_name})")
    try:
        yield
    finally:
        await http_client.aclose()
        logger.info("Application stopped")


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)
app.include_router(admin_router)
app.include_router(proxy_router)

logger.info("FastAPI application initialized")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
async def health_check(request: Request):
    """Store reachability, for load balancers and uptime checks."""
    store = request.app.state.room_store
    healthy = store.ping()
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "store": store.backend_name,
            "demo_mode": store.is_demo,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
