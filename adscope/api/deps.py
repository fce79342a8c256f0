from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from adscope.core.service import AdScopeService, get_service
from adscope.models.schemas import ErrorBody, ErrorEnvelope


def service_dependency() -> AdScopeService:
    return get_service()


def success(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def failure(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    envelope = ErrorEnvelope(error=ErrorBody(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))
