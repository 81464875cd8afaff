# propsignal/docs.py
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from typing import Any, Dict, List

from propsignal.settings import Settings

TAGS_METADATA: List[Dict[str, Any]] = [
    {
        "name": "health",
        "description": "Liveness & database readiness checks.",
    },
    {
        "name": "chat",
        "description": (
            "Ask about rental yields, prices and rents of Australian suburbs. "
            "`POST /chat/` returns a structured turn result; `/chat/stream` streams step events via **SSE**."
        ),
    },
]


def create_app(settings: Settings) -> FastAPI:
    """
    Central place for Swagger/OpenAPI metadata and docs URLs.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Conversational suburb analytics over a **read-only** property database. "
            "**Gemini** plans each turn; figures are computed from whitelisted table queries."
        ),
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.openapi_tags = TAGS_METADATA

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
            tags=TAGS_METADATA,
        )
        schema["servers"] = [{"url": "http://127.0.0.1:8001", "description": "Local dev"}]
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi
    return app
