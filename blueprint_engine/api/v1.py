"""
Blueprint Engine v1 API Routes
Image registration, blueprint generation, color sampling and DMC thread matching.
"""
import asyncio
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from blueprint_engine.config import config
from blueprint_engine.errors import HTTP_STATUS, DecodeError, Err, ErrorKind
from blueprint_engine.schemas import (
    BlueprintRequest,
    BlueprintResponse,
    ErrorResponse,
    ImageRegisterRequest,
    ImageRegisterResponse,
    SampleRequest,
    SampleResponse,
    ThreadMatchRequest,
    ThreadMatchResponse,
)
from blueprint_engine.services.blueprint.pipeline import BlueprintParams, generate_blueprint, validate_params
from blueprint_engine.services.cache import ImageSessionCache
from blueprint_engine.services.colors.threads import ThreadCatalog, match_thread
from blueprint_engine.services.imaging import decode_base64
from blueprint_engine.services.sampling import register_image, sample_color
from blueprint_engine.utils.ids import generate_request_id
from blueprint_engine.utils.logging import get_logger
from blueprint_engine.utils.metrics import get_metrics

router = APIRouter(prefix="/v1", tags=["Blueprint Engine"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Image not registered"},
    422: {"model": ErrorResponse, "description": "Image could not be decoded"},
    503: {"model": ErrorResponse, "description": "Thread dataset unavailable"},
}


def get_cache(request: Request) -> ImageSessionCache:
    return request.app.state.image_cache


def get_catalog(request: Request) -> Optional[ThreadCatalog]:
    return getattr(request.app.state, "thread_catalog", None)


def raise_for_error(error: Err, operation: str, request_id: Optional[str] = None):
    """Count the failure and raise the mapped HTTPException."""
    get_metrics().increment_failure_count(operation, error.kind.value)
    get_logger().warning(f"{operation} failed: {error.message}", extra={
        "request_id": request_id, "error": error.kind.value,
    })
    raise HTTPException(
        status_code=HTTP_STATUS[error.kind],
        detail={"error": error.kind.value, "message": error.message},
    )


@router.post("/images/register", response_model=ImageRegisterResponse, responses=ERROR_RESPONSES,
             summary="Register Image",
             description="Decode a base64 image into the session cache and return its ID")
def register(request: Request, body: ImageRegisterRequest) -> Dict[str, Any]:
    request_id = generate_request_id("reg")
    get_metrics().increment_request_count("register")

    result = register_image(get_cache(request), body.image_base64, body.max_size)
    if isinstance(result, Err):
        raise_for_error(result, "register", request_id)

    get_logger().info("Image registered", extra={
        "request_id": request_id, "image_id": result.value.image_id[:12], "cached": result.value.cached,
    })
    return result.value.to_dict()


@router.post("/images/upload", response_model=ImageRegisterResponse, responses=ERROR_RESPONSES,
             summary="Upload Image",
             description="Register a multipart image upload in the session cache")
async def upload(
    request: Request,
    file: UploadFile = File(..., description="JPEG, PNG or WebP image"),
    max_size: int = Query(config.DEFAULT_MAX_SIZE, ge=config.MIN_MAX_SIZE, le=config.MAX_MAX_SIZE),
) -> Dict[str, Any]:
    request_id = generate_request_id("reg")
    get_metrics().increment_request_count("register")

    if file.content_type and file.content_type not in config.SUPPORTED_MIME_TYPES:
        raise_for_error(
            Err(ErrorKind.INVALID_INPUT,
                f"Unsupported media type. Supported: {', '.join(config.SUPPORTED_MIME_TYPES)}"),
            "register", request_id,
        )

    image_bytes = await file.read()
    if len(image_bytes) > config.MAX_FILE_MB * 1024 * 1024:
        raise_for_error(
            Err(ErrorKind.INVALID_INPUT, f"File too large. Maximum size: {config.MAX_FILE_MB}MB"),
            "register", request_id,
        )

    result = await run_in_threadpool(get_cache(request).register, image_bytes, max_size)
    if isinstance(result, Err):
        raise_for_error(result, "register", request_id)
    return result.value.to_dict()


@router.delete("/images", summary="Clear Image Cache")
def clear_images(request: Request) -> Dict[str, Any]:
    cache = get_cache(request)
    removed = cache.stats()["entries"]
    cache.clear()
    get_logger().info("Image cache cleared", extra={"removed": removed})
    return {"ok": True, "removed": removed}


@router.post("/blueprint", response_model=BlueprintResponse, responses=ERROR_RESPONSES,
             summary="Generate Blueprint",
             description="Quantize an image into a palette, flat regions and simplified contours")
async def blueprint(request: Request, body: BlueprintRequest) -> Dict[str, Any]:
    request_id = generate_request_id("bp")
    start_time = time.time()
    metrics = get_metrics()
    metrics.increment_request_count("blueprint")

    params = BlueprintParams(
        palette_size=body.palette_size,
        seed=body.seed,
        min_region_area=body.min_region_area,
        merge_small_regions=body.merge_small_regions,
        merge_strategy=body.merge_strategy,
        epsilon=body.epsilon,
        max_iterations=body.max_iterations,
        include_dmc=body.include_dmc,
        return_preview=body.return_preview,
    )
    invalid = validate_params(params)
    if invalid is not None:
        raise_for_error(invalid, "blueprint", request_id)

    image_bytes = None
    if not body.image_id and body.image_base64:
        try:
            image_bytes = decode_base64(body.image_base64)
        except DecodeError as e:
            raise_for_error(Err(ErrorKind.DECODE_FAILURE, str(e)), "blueprint", request_id)

    resolved = await run_in_threadpool(
        get_cache(request).resolve, body.image_id, image_bytes, body.max_size
    )
    if isinstance(resolved, Err):
        raise_for_error(resolved, "blueprint", request_id)

    try:
        result = await asyncio.wait_for(
            run_in_threadpool(generate_blueprint, resolved.value, params, get_catalog(request), request_id),
            timeout=config.TIMEOUT_BLUEPRINT_MS / 1000,
        )
    except asyncio.TimeoutError:
        metrics.increment_failure_count("blueprint", "timeout")
        get_logger().error("Blueprint generation timed out", extra={"request_id": request_id})
        raise HTTPException(
            status_code=504,
            detail={"error": "timeout", "message": f"Blueprint exceeded {config.TIMEOUT_BLUEPRINT_MS}ms"},
        )

    total_ms = (time.time() - start_time) * 1000
    metrics.record_timing("blueprint", total_ms)
    for stage, duration in result.timings.items():
        metrics.record_timing(f"blueprint_{stage[:-3]}", duration)

    return result.to_dict()


@router.post("/sample", response_model=SampleResponse, responses=ERROR_RESPONSES,
             summary="Sample Color",
             description="Average the color around a normalized point and match it to DMC threads")
def sample(request: Request, body: SampleRequest) -> Dict[str, Any]:
    request_id = generate_request_id("sample")
    start_time = time.time()
    get_metrics().increment_request_count("sample")

    result = sample_color(
        get_cache(request),
        get_catalog(request),
        image_id=body.image_id,
        image_base64=body.image_base64,
        x=body.x,
        y=body.y,
        radius=body.radius,
        max_size=body.max_size,
    )
    if isinstance(result, Err):
        raise_for_error(result, "sample", request_id)

    get_metrics().record_timing("sample", (time.time() - start_time) * 1000)
    return result.value.to_dict()


@router.post("/threads/match", response_model=ThreadMatchResponse, responses=ERROR_RESPONSES,
             summary="Match DMC Thread",
             description="Find the nearest DMC threads to an RGB or hex color")
def threads_match(request: Request, body: ThreadMatchRequest) -> Dict[str, Any]:
    get_metrics().increment_request_count("match")

    rgb = (body.rgb.r, body.rgb.g, body.rgb.b) if body.rgb is not None else None
    result = match_thread(get_catalog(request), rgb=rgb, hex=body.hex)
    if isinstance(result, Err):
        raise_for_error(result, "match")

    return result.value.to_dict()
