"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- The session cookie security scheme, applied to the profile endpoint
- The optional ``X-PoW-*`` headers on the registration endpoint, which the
  handler reads through its guard chain rather than its signature

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from gatehouse.guards.pow import CHALLENGE_HEADER, NONCE_HEADER, TOKEN_HEADER

_POW_HEADERS = (
    (CHALLENGE_HEADER, "Challenge returned by /api/pow/challenge."),
    (NONCE_HEADER, "Nonce found by the client."),
    (TOKEN_HEADER, "Signed token returned with the challenge."),
)


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi
    cookie_name = app.state.container.settings.auth.session_cookie_name

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "SessionCookie",
            {
                "type": "apiKey",
                "in": "cookie",
                "name": cookie_name,
                "description": "Session cookie set by POST /api/login.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Accounts",
                "description": "Registration, login, logout and profile.",
            },
            {
                "name": "Proof of work",
                "description": "Challenges required by registration when enabled.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})

        register_op = paths.get("/api/register", {}).get("post")
        if isinstance(register_op, dict):
            parameters = register_op.setdefault("parameters", [])
            known = {p.get("name") for p in parameters}
            for name, description in _POW_HEADERS:
                if name not in known:
                    parameters.append(
                        {
                            "name": name,
                            "in": "header",
                            "required": False,
                            "schema": {"type": "string"},
                            "description": description,
                        }
                    )

        profile_op = paths.get("/api/profile", {}).get("get")
        if isinstance(profile_op, dict):
            profile_op["security"] = [{"SessionCookie": []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
