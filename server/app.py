# =============================================================================
# RepairIQ - FastAPI Server Application
# =============================================================================
# Defines the HTTP and WebSocket endpoints of the RepairIQ server:
#   POST /predict       classify one uploaded photo of a hardware component
#   GET  /health        liveness + model load state
#   GET  /phone-camera  deep link / QR code for joining the phone relay
#   WS   /ws            phone camera relay
#
# The classifier, relay and link issuer are created once per application and
# held on ``app.state``; handlers receive them through dependencies.
# =============================================================================

import asyncio
import logging
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile, WebSocket
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Config, get_config
from server.classifier import (
    HardwareClassifier,
    InferenceError,
    InvalidImageError,
    ModelUnavailableError,
)
from server.phone_link import PhoneLinkIssuer
from server.relay import PhoneRelay
from shared.schemas import (
    ErrorResponse,
    HealthResponse,
    PhoneLinkResponse,
    PredictResponse,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler: starts the model load and tears down.

    On startup:
        - Records the start time for /health uptime.
        - Loads the classification model in a worker thread unless the
          injected classifier is already loaded.  Requests are served while
          loading and answered with 503 until the model is ready.

    On shutdown:
        - Closes every phone relay connection.
    """
    app.state.start_time = time.time()
    classifier: HardwareClassifier = app.state.classifier

    load_task: Optional[asyncio.Task] = None
    if not classifier.is_ready:
        logger.info("Starting server — loading classification model in background...")
        load_task = asyncio.create_task(asyncio.to_thread(classifier.load))

    logger.info("Server ready — accepting requests.")
    yield

    logger.info("Shutting down server...")
    if load_task is not None and not load_task.done():
        load_task.cancel()
    await app.state.relay.shutdown()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_classifier(request: Request) -> HardwareClassifier:
    return request.app.state.classifier


def get_link_issuer(request: Request) -> PhoneLinkIssuer:
    return request.app.state.link_issuer


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------


def create_app(
    config: Optional[Config] = None,
    classifier: Optional[HardwareClassifier] = None,
) -> FastAPI:
    """
    Build the RepairIQ FastAPI application.

    Args:
        config:     Configuration; defaults to the global singleton.
        classifier: Pre-built classifier.  When omitted one is created from
                    ``config.model_path`` and loaded during startup.

    Returns:
        The configured FastAPI application.
    """
    config = config or get_config()

    app = FastAPI(
        title="RepairIQ Server",
        description=(
            "Identifies computer hardware components in photos and relays "
            "phone camera frames to desktop scanners."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.cors_origin],
        allow_credentials=config.cors_origin != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    link_issuer = PhoneLinkIssuer(base_url=config.public_base_url)
    app.state.config = config
    app.state.start_time = time.time()
    app.state.classifier = classifier or HardwareClassifier(
        model_path=config.model_path, device=config.device
    )
    app.state.link_issuer = link_issuer
    app.state.relay = PhoneRelay(
        max_connections=config.max_relay_connections,
        send_queue_size=config.relay_send_queue_size,
        link_issuer=link_issuer,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # A multipart "image" field that is not a file counts as no upload.
        if request.url.path == "/predict":
            logger.info("Rejected upload without an image file: %s", exc.errors())
            return _error(400, ErrorResponse(error="No image file uploaded"))
        return await request_validation_exception_handler(request, exc)

    @app.exception_handler(InvalidImageError)
    async def invalid_image_handler(request: Request, exc: InvalidImageError):
        logger.info("Rejected upload: %s", exc)
        return _error(400, ErrorResponse(error="Invalid image format", details=str(exc)))

    @app.exception_handler(ModelUnavailableError)
    async def model_unavailable_handler(request: Request, exc: ModelUnavailableError):
        return _error(
            503,
            ErrorResponse(
                error="Model not loaded yet",
                fallback="Please try again later or contact support",
            ),
        )

    @app.exception_handler(InferenceError)
    async def inference_error_handler(request: Request, exc: InferenceError):
        logger.error("Prediction error: %s", exc, exc_info=exc)
        body = ErrorResponse(error="Internal server error", details=str(exc))
        if config.is_development:
            body.stack = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        return _error(500, body)

    @app.get("/health", response_model=HealthResponse)
    def health_check(request: Request):
        """
        Health check endpoint.

        Returns status, whether the model is loaded, environment and uptime.
        """
        return HealthResponse(
            status="ok",
            modelLoaded=request.app.state.classifier.is_ready,
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=config.environment,
            uptime=round(time.time() - request.app.state.start_time, 2),
        )

    @app.post(
        "/predict",
        response_model=PredictResponse,
        responses={
            400: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
        },
    )
    async def predict(
        image: Optional[UploadFile] = File(default=None),
        classifier: HardwareClassifier = Depends(get_classifier),
    ):
        """
        Classify one uploaded image (multipart field ``image``).

        Inference runs in a worker thread so the event loop keeps serving
        other requests and relay traffic.
        """
        if image is None:
            return _error(400, ErrorResponse(error="No image file uploaded"))

        if not classifier.is_ready:
            raise ModelUnavailableError("Model not loaded yet")

        image_bytes = await image.read()
        logger.debug(
            "Predict: %s (%s, %d bytes)", image.filename, image.content_type, len(image_bytes)
        )

        result = await asyncio.to_thread(classifier.classify, image_bytes)
        return PredictResponse(component=result.label, confidence=result.confidence)

    @app.get("/phone-camera", response_model=PhoneLinkResponse)
    def phone_camera(issuer: PhoneLinkIssuer = Depends(get_link_issuer)):
        """Issue a deep link (and its QR code) for connecting a phone camera."""
        return issuer.issue()

    @app.websocket("/ws")
    async def relay_endpoint(websocket: WebSocket, token: Optional[str] = None):
        """Phone camera relay channel."""
        await websocket.app.state.relay.handle(websocket, token=token)

    return app


app = create_app()
