"""OpenAPI customization utilities.

Enriches the generated schema with tag metadata, the ``X-API-Key`` security
scheme and the 429 response shape shared by every rate limited operation.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {"name": "Tax", "description": "Rate limited tax calculation and payment operations."},
    {"name": "Rate Limits", "description": "Current quota per protected operation."},
    {"name": "Health", "description": "Liveness checks."},
]

_RATE_LIMITED_PATHS = ("/v1/tax/calculate", "/v1/tax/payments")

_TOO_MANY_REQUESTS = {
    "description": "Rate limit exceeded (code RATE_LIMIT_EXCEEDED).",
    "headers": {
        name: {"schema": {"type": "integer"}}
        for name in ("Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset")
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for API Key auth (header ``X-API-Key``)
    - Marks all operations as requiring API Key by default, then exempts health
      endpoints by setting ``security: []``
    - Documents the 429 response on rate limited operations
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(t for t in _TAGS if t["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.endswith("/health"):
                    method_obj["security"] = []
                if path in _RATE_LIMITED_PATHS:
                    method_obj.setdefault("responses", {})["429"] = _TOO_MANY_REQUESTS

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
