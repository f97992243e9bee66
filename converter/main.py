# converter/main.py: HTTP surface (mock conversion + job tracking)

import asyncio
import re
import logging
from enum import Enum
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.status import HTTP_400_BAD_REQUEST

from .config import ALLOWED_ORIGINS, FILE_TTL_SECS, LOG_LEVEL
from .conversion import convert, fetch_video_info
from .errors import ConverterError, FileNotFoundInStoreError, InvalidRequestError, JobNotFoundError
from .job_store import JobStore
from .lifecycle import LifecycleController
from .models import ConvertRequest, JobCreateRequest, JobDescriptor, JobFailRequest, JobStatus, VideoInfoRequest
from .registry import JobRegistry
from .simulator import ProgressSimulator
from .storage import select_file_store
from .videos import FORMAT_KINDS

# -------------------- Logger --------------------

logger = logging.getLogger("uvicorn.error")
logging.getLogger("converter").setLevel(LOG_LEVEL)

FILE_ID_RE = re.compile(r"^\d+-[0-9a-z]{9}$")

router = APIRouter()


class JobAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    RETRY = "retry"
    FAIL = "fail"


# -------------------- Health / Root --------------------

@router.get("/", include_in_schema=False)
def root():
    return {
        "ok": True,
        "service": "youtube-converter",
        "docs": "/docs",
        "endpoints": {
            "convert": "POST /api/convert - Convert YouTube video",
            "video_info": "POST /api/video-info - Look up video metadata",
            "download": "GET /api/download/{file_id} - Download converted file",
            "jobs": "GET|POST /api/jobs - Conversion job tracking",
        },
    }

@router.get("/healthz", include_in_schema=False)
def healthz():
    return JSONResponse({"ok": True, "service": "youtube-converter"}, status_code=200)

@router.get("/health", include_in_schema=False)
def health_alias():
    return {"ok": True}

# -------------------- Convert / Video info / Download --------------------

@router.post("/api/convert")
@router.post("/convert", include_in_schema=False)
async def convert_video(body: ConvertRequest, request: Request):
    try:
        result = await convert(body.url, body.format, body.quality, request.app.state.file_store)
    except ConverterError:
        raise
    except Exception:
        logger.exception("[Convert] Unexpected error during conversion")
        return JSONResponse(status_code=500, content={"error": "Internal server error during conversion"})

    # track the finished file like any other job so it shows up in /api/jobs
    job = request.app.state.lifecycle.submit(
        JobDescriptor(
            title=result.title,
            format=FORMAT_KINDS[result.format],
            quality=result.quality,
            file_size=result.file_size,
            thumbnail=result.thumbnail,
            duration=result.duration,
            file_url=result.download_url,
        )
    )
    result = result.model_copy(update={"job_id": job.id})

    return {"success": True, "data": result.model_dump(by_alias=True)}

@router.post("/api/video-info")
@router.post("/video-info", include_in_schema=False)
async def video_info(body: VideoInfoRequest):
    try:
        info = await fetch_video_info(body.url)
    except ConverterError:
        raise
    except Exception:
        logger.exception("[VideoInfo] Unexpected error fetching video info")
        return JSONResponse(status_code=500, content={"error": "Internal server error while fetching video info"})

    return {"success": True, "data": info.model_dump(by_alias=True)}

@router.get("/api/download/{file_id}")
@router.get("/download/{file_id}", include_in_schema=False)
def download_file(file_id: str, request: Request):
    """
    Browser-friendly download: stored bytes as an attachment, or a redirect
    to the presigned object when files live in S3.
    """
    if not FILE_ID_RE.match(file_id):
        raise InvalidRequestError("Invalid file id")

    try:
        stored = request.app.state.file_store.get(file_id)
    except Exception:
        logger.exception(f"[Download] Failed to read {file_id}")
        return JSONResponse(status_code=500, content={"error": "Internal server error during download"})

    if stored is None:
        raise FileNotFoundInStoreError(file_id)
    if stored.url:
        return RedirectResponse(stored.url, status_code=307)

    return Response(
        content=stored.data,
        media_type=stored.content_type,
        headers={"Content-Disposition": f'attachment; filename="{stored.filename}"'},
    )

# -------------------- Jobs --------------------

@router.get("/api/jobs")
async def list_jobs(request: Request, status: Optional[JobStatus] = None):
    jobs = request.app.state.registry.list(status=status)
    return {"jobs": [job.to_dict() for job in jobs]}

@router.post("/api/jobs", status_code=201)
async def submit_job(body: JobCreateRequest, request: Request):
    # only conversions may point a job at a stored file
    descriptor = body.model_copy(update={"file_url": None})
    job = request.app.state.lifecycle.submit(descriptor, autostart=body.autostart)
    return job.to_dict()

@router.get("/api/jobs/stats")
async def job_stats(request: Request):
    return request.app.state.registry.stats()

@router.post("/api/jobs/clear-completed")
async def clear_completed(request: Request):
    return {"removed": request.app.state.lifecycle.clear_completed()}

@router.get("/api/jobs/{job_id}")
async def get_job(job_id: str, request: Request):
    job = request.app.state.registry.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job.to_dict()

@router.post("/api/jobs/{job_id}/{action}")
async def job_action(
    job_id: str,
    action: JobAction,
    request: Request,
    body: Optional[JobFailRequest] = None,
):
    lifecycle: LifecycleController = request.app.state.lifecycle
    if action == JobAction.FAIL:
        job = lifecycle.fail(job_id, error=body.error if body else None)
    else:
        job = getattr(lifecycle, action.value)(job_id)
    return job.to_dict()

@router.delete("/api/jobs/{job_id}")
async def cancel_job(job_id: str, request: Request):
    """Remove the job and the converted file it points at."""
    job = request.app.state.registry.get(job_id)
    removed = request.app.state.lifecycle.cancel(job_id)

    file_id = job.file_id if job is not None else None
    if file_id and FILE_ID_RE.match(file_id):
        try:
            await asyncio.to_thread(request.app.state.file_store.delete, file_id)
        except Exception as e:
            logger.warning(f"[Cancel] Failed to delete file {file_id} for job {job_id}: {e}")

    return {"ok": True, "removed": removed}

# -------------------- App factory --------------------

def create_app(registry: JobRegistry | None = None, file_store=None, simulator: ProgressSimulator | None = None) -> FastAPI:
    app = FastAPI(title="youtube-converter")

    registry = registry if registry is not None else JobRegistry(JobStore())
    simulator = simulator or ProgressSimulator(registry)
    app.state.registry = registry
    app.state.simulator = simulator
    app.state.lifecycle = LifecycleController(registry, simulator)
    app.state.file_store = file_store if file_store is not None else select_file_store()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length"],
        allow_credentials=False,
    )

    @app.exception_handler(ConverterError)
    async def converter_error_handler(request: Request, exc: ConverterError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body", "detail": jsonable_encoder(exc.errors())},
        )

    @app.on_event("startup")
    async def startup():
        """Drop expired converted files and pick up persisted processing jobs."""
        logger.info("[Startup] Cleaning expired converted files...")
        try:
            app.state.file_store.cleanup_old_files(FILE_TTL_SECS)
        except Exception as e:
            logger.warning(f"[Cleanup] Failed to clean converted files: {e}")
        app.state.simulator.resume_all()

    @app.on_event("shutdown")
    async def shutdown():
        app.state.simulator.stop()
        # let queued history writes land before the process exits
        app.state.registry.close()

    app.include_router(router)
    return app


app = create_app()
