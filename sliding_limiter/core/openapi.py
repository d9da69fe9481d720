"""OpenAPI customization utilities.

Documents the admission-control responses (403, 429, 503) and the
X-RateLimit-* headers on every rate-limited operation, and adds tags
metadata. Health endpoints are exempt from rate limiting and left as is.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_ERROR_SCHEMA = {"$ref": "#/components/schemas/HTTPErrorBody"}

_LIMIT_HEADERS = {
    "X-RateLimit-Limit": {
        "description": "Requests admitted per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
}

_LIMITER_RESPONSES: Dict[str, Dict[str, Any]] = {
    "403": {
        "description": "Client identity could not be determined.",
        "content": {"application/json": {"schema": _ERROR_SCHEMA}},
    },
    "429": {
        "description": "Rate limit exceeded.",
        "headers": {
            "Retry-After": {
                "description": "Seconds to wait before retrying.",
                "schema": {"type": "integer"},
            },
            **_LIMIT_HEADERS,
        },
        "content": {"application/json": {"schema": _ERROR_SCHEMA}},
    },
    "503": {
        "description": "Rate limit store unavailable.",
        "content": {"application/json": {"schema": _ERROR_SCHEMA}},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with limiter responses and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        schemas = schema.setdefault("components", {}).setdefault("schemas", {})
        schemas.setdefault(
            "HTTPErrorBody",
            {
                "type": "object",
                "properties": {"detail": {"type": "string"}},
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Limited",
                "description": "Endpoints guarded by sliding-window admission control.",
            },
            {
                "name": "Health",
                "description": "Liveness checks (never rate limited).",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                for code, body in _LIMITER_RESPONSES.items():
                    responses.setdefault(code, body)
                ok = responses.get("200")
                if isinstance(ok, dict):
                    ok.setdefault("headers", dict(_LIMIT_HEADERS))

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
