import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import init_db
from api.applications import router as applications_router
from api.documents import router as documents_router
from api.lenders import products_router, router as lenders_router
from api.signing import router as signing_router
from services.errors import (
    ConflictError,
    ExternalServiceError,
    InsufficientDataError,
    LendingError,
    NotFoundError,
    ValidationError,
)
from services.esign import SignNowClient
from services.ocr import OpenAIVisionOcrProvider
from services.storage import LocalObjectStorage

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    app.state.storage = LocalObjectStorage(
        settings.storage_dir, settings.storage_signing_secret, settings.public_base_url
    )
    app.state.ocr_provider = OpenAIVisionOcrProvider(
        settings.openai_api_key, model=settings.ocr_model, timeout=settings.ocr_timeout_seconds
    )
    app.state.esign_client = SignNowClient(
        settings.signnow_base_url, settings.signnow_api_token, timeout=settings.esign_timeout_seconds
    )
    yield
    await app.state.esign_client.close()
    await app.state.ocr_provider.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Lender matching, bank statement analysis and e-sign orchestration API",
    version="0.2.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def status_for(exc: LendingError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, InsufficientDataError):
        return 422
    if isinstance(exc, ExternalServiceError):
        return 502
    return 500


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=status, content=body)


app.include_router(applications_router)
app.include_router(lenders_router)
app.include_router(products_router)
app.include_router(documents_router)
app.include_router(signing_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
