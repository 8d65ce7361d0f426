"""
FastAPI application wiring.

Creates the `FastAPI` instance, applies CORS for local frontends and mounts the
`/api` router. Resolution and search logic live in `wayfinder.resolver` and
`wayfinder.search`.

Run with: `uvicorn wayfinder.api.app:app --reload`
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from wayfinder.core.logging import configure_logging

from .routes import router

LOCALHOST_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def _cors_config() -> tuple[list[str], str | None]:
    """Explicit origins from WAYFINDER_CORS_ORIGINS, else any localhost port.

    WAYFINDER_CORS_ALLOW_LOCAL=0 turns the localhost allowance off.
    """
    origins = [s.strip() for s in os.getenv("WAYFINDER_CORS_ORIGINS", "").split(",") if s.strip()]
    if origins:
        return origins, None
    allow_local = os.getenv("WAYFINDER_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
    return [], LOCALHOST_ORIGIN_REGEX if allow_local else None


configure_logging()

app = FastAPI(title="Wayfinder API", version="0.1.0")

cors_origins, cors_origin_regex = _cors_config()
if cors_origins or cors_origin_regex:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_origin_regex=cors_origin_regex,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

app.include_router(router)
