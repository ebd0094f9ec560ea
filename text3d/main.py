"""
FastAPI Text Model Backend
Generates extruded 3D text as GLB files and returns a URI to each one

POST /generate-text answers 400 when the body is invalid (including text longer
than MAX_TEXT_LENGTH) and also when the text has no character the font can draw,
since a GLB with an empty mesh is not a valid model. Every other failure is a
generic 500.
"""
import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from . import config
from .errors import EmptyTextError, GenerationError, PersistenceError
from .fonts import FontProvider
from .models import ErrorResponse, GenerationRequest, GenerationResponse, StatusResponse
from .publisher import ArtifactPublisher, LocalPublisher, create_publisher
from .service import generate_text_model

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Captured once; never changes for the life of the process
START_TIME = datetime.now(timezone.utc)

STATIC_DIR = os.path.join(os.path.dirname(__file__), "static")
GENERATION_FAILED = "Failed to generate text model"

# Create FastAPI app
app = FastAPI(
    title="Text Model API",
    description="Generate extruded 3D text as GLB models",
    version="1.0.0"
)

# CORS - Allow all origins so viewers can load the models directly
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Dependencies
# ============================================================================

font_provider = FontProvider(config.FONT_URL, timeout=config.FONT_FETCH_TIMEOUT)
publisher = create_publisher()

if isinstance(publisher, LocalPublisher):
    app.mount(config.STATIC_PREFIX, StaticFiles(directory=publisher.directory), name="temp")


def get_font_provider() -> FontProvider:
    return font_provider


def get_publisher() -> ArtifactPublisher:
    return publisher


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Landing page"""
    return FileResponse(os.path.join(STATIC_DIR, "index.html"))


@app.get("/status", response_model=StatusResponse)
async def status():
    """Liveness check with the process start time"""
    return StatusResponse(
        startTime=START_TIME.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )


@app.post("/generate-text", response_model=GenerationResponse)
async def generate_text(
    body: GenerationRequest,
    fonts: FontProvider = Depends(get_font_provider),
    store: ArtifactPublisher = Depends(get_publisher),
):
    """
    Generate a 3D text model and return the URI of the GLB file.

    The blocking pipeline (font fetch, geometry, export, upload) runs in the
    threadpool so other requests keep being served.
    """
    logger.info(f"Request received: text={body.text!r} depth={body.depth} animate={body.animate}")

    try:
        uri = await asyncio.wait_for(
            run_in_threadpool(generate_text_model, body, fonts, store),
            timeout=config.GENERATION_TIMEOUT,
        )
    except EmptyTextError as e:
        logger.warning(f"Nothing to render: {e}")
        raise HTTPException(status_code=400, detail="Text contains no renderable characters")

    except GenerationError as e:
        logger.error(f"Generation failed during {e.phase} for text {body.text!r}: {e}")
        raise HTTPException(status_code=500, detail=GENERATION_FAILED)

    except asyncio.TimeoutError:
        logger.error(f"Generation timed out after {config.GENERATION_TIMEOUT}s for text {body.text!r}")
        raise HTTPException(status_code=500, detail=GENERATION_FAILED)

    except Exception as e:
        # Unexpected errors
        logger.exception(f"Unexpected generation error for text {body.text!r}: {e}")
        raise HTTPException(status_code=500, detail=GENERATION_FAILED)

    return GenerationResponse(uri=uri)


@app.get("/list-files", response_model=List[str])
async def list_files(store: ArtifactPublisher = Depends(get_publisher)):
    """Filenames of previously generated models"""
    try:
        return await run_in_threadpool(store.list_artifacts)
    except PersistenceError as e:
        logger.error(f"Could not list the artifacts: {e}")
        raise HTTPException(status_code=500, detail="Failed to list files")

    except Exception as e:
        # Unexpected errors (e.g. storage auth or transport failures)
        logger.exception(f"Unexpected error listing artifacts: {e}")
        raise HTTPException(status_code=500, detail="Failed to list files")


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom error response format"""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(exclude_none=True)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Invalid bodies are client errors (400), not 422"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(p for p in first.get("loc", ()) if isinstance(p, str) and p != "body")
    logger.warning(f"Rejected request to {request.url.path}: {errors}")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=f'Missing or invalid "{field}" in request body' if field else "Invalid request body",
            detail=first.get("msg"),
        ).model_dump(exclude_none=True)
    )


def run():
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
