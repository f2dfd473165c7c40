import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import get_settings
from up2b.dependencies import get_service
from up2b.descriptor import defaults
from up2b.errors import (
    AuthError,
    ConfigError,
    CustomCodeExists,
    DecodeError,
    NetworkError,
    ProviderRejected,
    SizeExceeded,
    UnsupportedFormat,
    Up2bError,
    ValidationError,
)
from up2b.schemas import AppConfig, DeleteResponse, ImageRecord, ManagerItem, UploadJob, UploadResult
from up2b.schemas.api import (
    BatchUploadRequest,
    Capabilities,
    CodeAvailability,
    ManagerCodeRequest,
    NewManagerRequest,
    UsingResponse,
    VerifyRequest,
    VerifyResponse,
    VersionResponse,
)
from up2b.schemas.config import ManagerKind, parse_manager_code
from up2b.schemas.descriptor import ApiConfig
from up2b.service import Up2bService
from up2b.storage.base import ConfigConflictError

# Get settings and configure logging before anything else
settings = get_settings()
settings.configure_logging()

# Create logger for this module
logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS: list[tuple[type[Up2bError], int]] = [
    (CustomCodeExists, 409),
    (ConfigConflictError, 409),
    (ValidationError, 400),
    (UnsupportedFormat, 400),
    (SizeExceeded, 413),
    (AuthError, 401),
    (ConfigError, 404),
    (NetworkError, 502),
    (DecodeError, 502),
    (ProviderRejected, 502),
]


def status_for(error: Up2bError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def _canonical_code(code: str) -> str:
    try:
        return parse_manager_code(code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Config file: {settings.config_file}")
    logger.info(f"Compression enabled: {settings.compress_enabled}")

    settings.temp_dir.mkdir(parents=True, exist_ok=True)

    yield

    # Shutdown
    logger.info("Shutting down application")


# Create FastAPI app with settings
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Up2bError)
async def up2b_error_handler(request: Request, exc: Up2bError) -> JSONResponse:
    """Report provider operation errors as ``{code, detail}``."""
    status = status_for(exc)
    body: dict[str, Any] = exc.to_dict()
    if isinstance(exc, ValidationError) and exc.field_errors:
        body["errors"] = [error.model_dump() for error in exc.field_errors]
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: [{exc.code}] {exc.message}")
    return JSONResponse(status_code=status, content=body)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Simple health-check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": settings.app_version,
    }


router = APIRouter(prefix=settings.api_prefix)


@router.get("/config", response_model=Optional[AppConfig])
def get_config(service: Up2bService = Depends(get_service)) -> Optional[AppConfig]:
    """Get the saved configuration, or null before the first save."""
    return service.get_config()


@router.put("/config", response_model=VersionResponse)
async def update_config(
    config: AppConfig,
    expected_version: Optional[int] = None,
    service: Up2bService = Depends(get_service),
) -> VersionResponse:
    """Replace the configuration document.

    Args:
        config: The whole new configuration.
        expected_version: Version the client read; a stale one answers 409.
        service: Service from get_service dependency.
    """
    version = await service.update_config(config, expected_version)
    return VersionResponse(version=version)


@router.get("/managers", response_model=list[ManagerItem])
def list_managers(service: Up2bService = Depends(get_service)) -> list[ManagerItem]:
    """List built-in providers followed by the user's custom ones."""
    return service.get_managers()


@router.get("/managers/check", response_model=CodeAvailability)
def check_manager_code(code: str, service: Up2bService = Depends(get_service)) -> CodeAvailability:
    return CodeAvailability(code=code, available=service.check_new_manager_code(code))


@router.get("/managers/defaults/{kind}")
def manager_defaults(kind: ManagerKind, existing_code: Optional[str] = None) -> dict[str, Any]:
    """Form template for a new provider of ``kind``, or for a built-in code."""
    return defaults(kind, existing_code)


@router.post("/managers", response_model=UsingResponse, status_code=201)
async def new_custom_manager(
    request: NewManagerRequest, service: Up2bService = Depends(get_service)
) -> UsingResponse:
    """Add a custom API provider and make it the active one."""
    code = await service.new_custom_manager(request.code, request.descriptor)
    return UsingResponse(using=code)


@router.get("/managers/using", response_model=UsingResponse)
def get_using(service: Up2bService = Depends(get_service)) -> UsingResponse:
    return UsingResponse(using=service.get_using())


@router.put("/managers/using", response_model=UsingResponse)
async def toggle_manager(
    request: ManagerCodeRequest, service: Up2bService = Depends(get_service)
) -> UsingResponse:
    code = await service.toggle_manager(_canonical_code(request.code))
    return UsingResponse(using=code)


@router.get("/capabilities", response_model=Capabilities)
def get_capabilities(service: Up2bService = Depends(get_service)) -> Capabilities:
    """Describe what the active provider accepts."""
    return Capabilities(
        using=service.get_using(),
        allowed_formats=service.get_allowed_formats(),
        compress=service.get_compress_state(),
        automatic_compression=service.automatic_compression(),
        stream=service.get_support_stream(),
    )


@router.get("/builtin/smms", response_model=ApiConfig)
def smms_config(service: Up2bService = Depends(get_service)) -> ApiConfig:
    """The built-in SM.MS descriptor."""
    return service.smms_config()


@router.post("/verify", response_model=VerifyResponse)
async def verify(request: VerifyRequest, service: Up2bService = Depends(get_service)) -> VerifyResponse:
    """Check credentials against the provider and save them on success."""
    extra = await service.verify(_canonical_code(request.code), request.config)
    return VerifyResponse(extra=extra)


@router.get("/images", response_model=list[ImageRecord])
async def list_images(
    refresh: bool = False, service: Up2bService = Depends(get_service)
) -> list[ImageRecord]:
    """List images of the active provider.

    Args:
        refresh: Bypass the cached listing and ask the provider again.
        service: Service from get_service dependency.
    """
    return await service.get_all_images(refresh=refresh)


@router.post("/images", response_model=UploadResult)
async def upload_image(file: UploadFile, service: Up2bService = Depends(get_service)) -> UploadResult:
    """Upload one image file to the active provider.

    The file is written to the temp directory under its own name, since the
    provider checks the extension and may show the name.

    Raises:
        HTTPException: If the file is empty or has no name.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="File cannot be empty")
    if not file.filename:
        raise HTTPException(status_code=400, detail="File name is required")

    upload_root = settings.get_temp_path("uploads")
    upload_root.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(dir=upload_root) as upload_dir:
        path = Path(upload_dir) / Path(file.filename).name
        path.write_bytes(content)
        logger.info(f"Uploading {path.name} ({len(content)} bytes)")
        return await service.upload_image(path)


@router.post("/images/batch", response_model=list[UploadJob])
async def upload_images(
    request: BatchUploadRequest, service: Up2bService = Depends(get_service)
) -> list[UploadJob]:
    """Upload local files one after another, in the given order."""
    return await service.upload_images(request.paths)


@router.delete("/images/{deleted_id:path}", response_model=DeleteResponse)
async def delete_image(deleted_id: str, service: Up2bService = Depends(get_service)) -> DeleteResponse:
    return await service.delete_image(deleted_id)


app.include_router(router)
