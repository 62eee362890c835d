"""
FastAPI dependencies.

The record store and pipeline live on `app.state`, created in the lifespan
(or injected by `create_app` for tests).
"""

from fastapi import Request

from riskquote.db.store import RecordStore
from riskquote.pipeline.recompute import RecomputePipeline


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_pipeline(request: Request) -> RecomputePipeline:
    return request.app.state.pipeline
