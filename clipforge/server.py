"""Aggregate app for the clipforge engines."""
from __future__ import annotations

from fastapi import FastAPI

from clipforge.media.routes import router as media_router
from clipforge.video_render.routes import router as render_router
from clipforge.video_timeline.routes import router as timeline_router


def create_app() -> FastAPI:
    app = FastAPI(title="clipforge")
    app.include_router(media_router)
    app.include_router(timeline_router)
    app.include_router(render_router)
    return app


app = create_app()
