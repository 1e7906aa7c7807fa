import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import redis_backend
from errors import InvalidRequest, SignalingError
from logging_config import get_logger, setup_logging
from routers.ice_servers import ice_router
from routers.signals import signals_router

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The relay keeps serving without the store; requests answer 503 until it is back
    try:
        redis_backend.ping()
        logger.info("Signal store reachable")
    except SignalingError as e:
        logger.warning(f"Signal store not reachable at startup: {e.detail}")
    yield


app = FastAPI(title="Signal Relay", lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(signals_router)
app.include_router(ice_router)


@app.exception_handler(SignalingError)
async def signaling_error_handler(request: Request, exc: SignalingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.detail}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {type(exc).__name__}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Bad kinds, directions and payloads are all InvalidRequest
    errors = exc.errors()
    detail = "; ".join(f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors)
    logger.warning(f"Rejected {request.method} {request.url.path}: {detail}")
    return JSONResponse(status_code=InvalidRequest.status_code, content=InvalidRequest(detail).to_dict())


logger.info("FastAPI application initialized")
