"""
FastAPI application entry point for the admin console backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from admin_console.config import get_settings
from admin_console.routes import router
from admin_console.store import DocumentStoreError

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


async def _document_store_error(request: Request, exc: DocumentStoreError):
    logger.error("Document store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Document store error"})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Admin Console Backend", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(DocumentStoreError, _document_store_error)
    return app


app = create_app()
