"""OpenAPI security schemes and tag metadata for the admission API.

Enriches the generated schema with:
- Tags metadata
- An optional API Key scheme (``X-API-Key``) for authenticated callers
- A CSRF token scheme (``X-CSRF-Token``) on state-changing operations
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_STATE_CHANGING = {"post", "put", "patch", "delete"}

TAGS_METADATA = [
    {
        "name": "CSRF",
        "description": "Issue and rotate anti-forgery tokens.",
    },
    {
        "name": "Rate limit",
        "description": "Inspect the caller's current rate limit window.",
    },
    {
        "name": "Admin",
        "description": "Administrative invalidation of tokens and windows (admin role).",
    },
    {
        "name": "Health",
        "description": "Liveness and readiness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for the API key and CSRF headers
    - API key is optional everywhere (anonymous access is allowed)
    - State-changing operations additionally list the CSRF header
    - Health endpoints are marked with ``security: []``
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Optional API key identifying the caller.",
            },
        )
        security_schemes.setdefault(
            "CsrfToken",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-CSRF-Token",
                "description": "Token from GET /v1/csrf-token, bound to the caller.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method, method_obj in methods.items():
                if not isinstance(method_obj, dict):
                    continue
                if path.startswith("/health"):
                    method_obj["security"] = []
                elif method in _STATE_CHANGING:
                    method_obj["security"] = [{"ApiKeyAuth": [], "CsrfToken": []}, {"CsrfToken": []}]
                else:
                    method_obj["security"] = [{"ApiKeyAuth": []}, {}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
