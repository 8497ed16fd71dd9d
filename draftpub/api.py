from __future__ import annotations
import json
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from .config import get_config
from .pipeline import PublishPipeline, publish_request

app = FastAPI(title="draftpub", description="Publish draft catalog products to the live catalog")


def get_pipeline() -> PublishPipeline:
    return PublishPipeline(get_config())


@app.post("/api/drafts/publish")
async def publish_drafts(request: Request, pipeline: PublishPipeline = Depends(get_pipeline)) -> JSONResponse:
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = {}
    # The pipeline blocks on disk, database and the ingest process
    status_code, body = await run_in_threadpool(publish_request, pipeline, payload)
    return JSONResponse(body, status_code=status_code)
