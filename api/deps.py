"""
Request-scoped access to the clients built in main.lifespan.
"""
from fastapi import Request

from services.esign import ESignClient
from services.ocr import OcrProvider
from services.storage import LocalObjectStorage


def get_storage(request: Request) -> LocalObjectStorage:
    return request.app.state.storage


def get_ocr_provider(request: Request) -> OcrProvider:
    return request.app.state.ocr_provider


def get_esign_client(request: Request) -> ESignClient:
    return request.app.state.esign_client
