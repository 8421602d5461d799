from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple
import base64
import logging

from fastapi import Body, Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openai import OpenAI
from starlette.datastructures import UploadFile

import config
from agents import PlantDoctorAgent
from errors import (
    ChatFailure,
    InvalidRequest,
    InvalidType,
    MissingInput,
    PayloadTooLarge,
    PlantDoctorError,
    StoreFailure,
    UpstreamGeneric,
)
from openai_client import check_connection, get_client
from schemas import AnalysisRecordIn, AnalysisResult, ChatRequest, ChatResponse, SaveResponse
from search_store import AnalysisStore, create_store
from vision_module import analyze_image

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)
config.log_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.OPENAI_CHECK_ON_STARTUP:
        await run_in_threadpool(check_connection, get_client())
    yield


app = FastAPI(title="Plant Doctor AI Brain", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

analysis_store = create_store()


def get_llm_client() -> Optional[OpenAI]:
    return get_client()


def get_store() -> AnalysisStore:
    return analysis_store


# Body validation failures per route, so clients always get {error, details?}.
VALIDATION_ERRORS: Dict[Tuple[str, str], Callable[[str], PlantDoctorError]] = {
    ("POST", "/api/chat"): lambda details: ChatFailure(details=details),
    ("POST", "/api/search"): lambda details: StoreFailure("Failed to save analysis", details=details),
    ("POST", "/api/analyze"): lambda details: MissingInput(details=details),
}


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


@app.exception_handler(PlantDoctorError)
async def plant_doctor_error_handler(request: Request, exc: PlantDoctorError) -> JSONResponse:
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(level, "%s %s failed: %s (%s) %s", request.method, request.url.path, exc.code, exc.message, exc.details or "")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _describe_validation_error(exc)
    factory = VALIDATION_ERRORS.get((request.method, request.url.path))
    error = factory(details) if factory else InvalidRequest(details=details)
    return await plant_doctor_error_handler(request, error)


@app.get("/health")
def health(client: Optional[OpenAI] = Depends(get_llm_client)) -> Dict[str, Any]:
    return {"status": "ok", "openai_configured": client is not None}


@app.post("/api/analyze", response_model=AnalysisResult)
async def analyze_endpoint(
    request: Request,
    client: Optional[OpenAI] = Depends(get_llm_client),
) -> AnalysisResult:
    # The form is read by hand so a text part named "image" is MissingInput, not a 422.
    try:
        form = await request.form()
    except Exception as e:
        raise MissingInput(details=f"Unreadable form data: {e}") from e

    try:
        return await _analyze_upload(form.get("image"), client)
    except PlantDoctorError:
        raise
    except Exception as e:
        logger.exception("Analysis error")
        raise UpstreamGeneric(details=str(e)) from e
    finally:
        await form.close()


async def _analyze_upload(image: Any, client: Optional[OpenAI]) -> AnalysisResult:
    # First failing check wins; nothing is sent upstream until all pass.
    if not isinstance(image, UploadFile) or not image.filename:
        raise MissingInput()
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise InvalidType()
    if image.size is not None and image.size > config.MAX_IMAGE_BYTES:
        raise PayloadTooLarge()

    data = await image.read()
    if len(data) > config.MAX_IMAGE_BYTES:
        raise PayloadTooLarge()

    image_b64 = base64.b64encode(data).decode("ascii")
    logger.info(
        "Processing image analysis request: image_type=%s image_size=%d base64_length=%d",
        content_type,
        len(data),
        len(image_b64),
    )

    analysis = await run_in_threadpool(analyze_image, image_b64, content_type, client)
    logger.info("Analysis result: %s", analysis.model_dump(by_alias=True))
    return analysis


@app.post("/api/chat", response_model=ChatResponse)
def chat_endpoint(
    payload: ChatRequest = Body(...),
    client: Optional[OpenAI] = Depends(get_llm_client),
) -> ChatResponse:
    agent = PlantDoctorAgent(client=client)
    answer = agent.ask(payload.messages, payload.analysis)
    return ChatResponse(response=answer)


@app.get("/api/search")
def search_endpoint(q: Optional[str] = None, store: AnalysisStore = Depends(get_store)) -> List[Dict[str, Any]]:
    try:
        return store.search(q)
    except PlantDoctorError:
        raise
    except Exception as e:
        logger.exception("Search error")
        raise StoreFailure(details=str(e)) from e


@app.post("/api/search", response_model=SaveResponse)
def save_analysis_endpoint(
    payload: AnalysisRecordIn = Body(...),
    store: AnalysisStore = Depends(get_store),
) -> SaveResponse:
    try:
        store.append(payload.model_dump())
    except Exception as e:
        logger.exception("Failed to save analysis")
        raise StoreFailure("Failed to save analysis", details=str(e)) from e
    return SaveResponse(success=True)
