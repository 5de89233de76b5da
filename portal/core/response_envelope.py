from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response


def _success_code(status_code: int) -> str:
    mapping = {
        200: "ok",
        201: "created",
        202: "accepted",
    }
    return mapping.get(status_code, "ok")


def _success_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Success"


def _build_success_envelope(data: Any, status_code: int) -> dict[str, Any]:
    return {
        "code": _success_code(status_code),
        "message": _success_message(status_code),
        "data": data,
        "details": {},
    }


def _is_enveloped(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return "code" in payload and "message" in payload and "data" in payload


def _copy_headers(source: Response, target: Response) -> Response:
    for key, value in source.headers.items():
        if key.lower() in {"content-length", "content-type"}:
            continue
        target.headers[key] = value
    return target


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    """Wrap successful JSON responses in the {code, message, data, details} envelope."""

    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code < 200 or response.status_code >= 300:
            return response

        if response.status_code == 204:
            return _copy_headers(
                response, JSONResponse(status_code=200, content=_build_success_envelope(None, 200))
            )

        if response.headers.get("content-type", "").split(";")[0] != "application/json":
            return response

        body = b""
        async for chunk in response.body_iterator:
            body += chunk
        try:
            payload = json.loads(body) if body else None
        except ValueError:
            return _copy_headers(
                response,
                Response(content=body, status_code=response.status_code, media_type="application/json"),
            )

        if _is_enveloped(payload):
            wrapped = payload
        else:
            wrapped = _build_success_envelope(payload, response.status_code)
        return _copy_headers(response, JSONResponse(status_code=response.status_code, content=wrapped))


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)
