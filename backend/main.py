from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
import logging
import time

from layerlab import config
from layerlab.checkpoints import CheckpointStore
from layerlab.database import init_database, get_db
from layerlab.datasets import PlaceholderDataSource, SqlTrainingSetCatalog, TrainingSetImageDataSource
from layerlab.errors import LayerLabError, format_validation_errors
from layerlab.inference import InferenceService
from layerlab.registry import ModelRegistry
from layerlab.routers import general_router, models_router, users_router, training_sets_router
from layerlab.training import TrainingOrchestrator

# Setup logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format=config.LOG_FORMAT,
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("layerlab-api")

def build_data_source(catalog):
    """Pick the training data source named by LAYERLAB_TRAINING_DATA"""
    if config.TRAINING_DATA_SOURCE == "placeholder":
        logger.warning("Training on placeholder data; models will not learn anything meaningful")
        return PlaceholderDataSource(samples=config.PLACEHOLDER_SAMPLES)
    if config.TRAINING_DATA_SOURCE != "images":
        logger.warning(f"Unknown training data source '{config.TRAINING_DATA_SOURCE}', using images")
    return TrainingSetImageDataSource(catalog)

# Define lifespan context manager for startup/shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up the API...")
    config.setup_dirs()

    logger.info("Initializing database...")
    if init_database():
        logger.info("Database initialized successfully")
    else:
        logger.warning("Database initialization failed, training set features may not work")

    catalog = SqlTrainingSetCatalog(get_db)
    registry = ModelRegistry()
    app.state.registry = registry
    app.state.orchestrator = TrainingOrchestrator(
        registry,
        build_data_source(catalog),
        CheckpointStore(config.CHECKPOINT_DIR),
        patience=config.EARLY_STOPPING_PATIENCE
    )
    app.state.inference = InferenceService(registry, catalog)

    logger.info("API startup complete")

    yield

    logger.info("Shutting down the API...")

app = FastAPI(
    title="LayerLab API",
    description="Build neural networks from declarative layer lists, train them on image training sets and run predictions",
    version="1.0.0",
    lifespan=lifespan
)

class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs every request with method, path, status and duration"""

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 1)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms} ms)")
        return response

app.add_middleware(RequestLogMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})

@app.exception_handler(LayerLabError)
async def layerlab_error_handler(request: Request, exc: LayerLabError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = format_validation_errors(exc.errors())
    return error_response(400, "validation_error", "Request validation failed", details)

HTTP_ERROR_CODES = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    500: "internal_error",
}

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return error_response(exc.status_code, code, str(exc.detail))

# Include all routers
app.include_router(general_router)
app.include_router(models_router)
app.include_router(users_router)
app.include_router(training_sets_router)

# If this module is run directly, start the FastAPI app with Uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=config.DEBUG_MODE)
