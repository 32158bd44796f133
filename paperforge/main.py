"""FastAPI application wiring for the paperforge backend."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from .metrics import METRICS
from .models import (
    AssembleRequest,
    AssembleResponse,
    CEFRLevel,
    CommitPaperRequest,
    CommitPaperResponse,
    FeasibilityReport,
    ItemBatchRequest,
    ItemBatchResponse,
    ItemListResponse,
    ItemType,
    ValidateRequest,
)
from .repositories import ItemRepository
from .services import AssemblyService, EngineConfig, InMemoryItemRepository, configure_logging
from .storage import SqliteItemRepository


app = FastAPI(title="paperforge", version="0.1.0")


def get_assembly_service() -> AssemblyService:
    return app.state.assembly_service


def _build_repository(db_path: Optional[str]) -> ItemRepository:
    if db_path:
        return SqliteItemRepository(Path(db_path))
    return InMemoryItemRepository()


@app.on_event("startup")
def startup() -> None:
    configure_logging(os.getenv("PAPERFORGE_LOG_LEVEL", "INFO"))
    engine_config = EngineConfig(
        oversample_factor=int(os.getenv("PAPERFORGE_OVERSAMPLE_FACTOR", "2")),
        emergency_limit=int(os.getenv("PAPERFORGE_EMERGENCY_LIMIT", "10")),
    )

    repository = _build_repository(os.getenv("PAPERFORGE_DB_PATH"))
    app.state.repository = repository
    app.state.engine_config = engine_config
    app.state.assembly_service = AssemblyService(repository, engine_config=engine_config)
    logger.info(
        "paperforge started (repository={}, oversample={}, emergency_limit={})",
        type(repository).__name__,
        engine_config.oversample_factor,
        engine_config.emergency_limit,
    )


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid input data", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Failed to process request"})


@app.post("/v1/items", response_model=ItemBatchResponse)
def create_items(
    request: ItemBatchRequest, service: AssemblyService = Depends(get_assembly_service)
) -> ItemBatchResponse:
    return service.add_items(request.owner_id, request.items)


@app.get("/v1/items", response_model=ItemListResponse)
def list_items(
    owner_id: str,
    level: Optional[CEFRLevel] = None,
    type: Optional[ItemType] = None,
    service: AssemblyService = Depends(get_assembly_service),
) -> ItemListResponse:
    items = service.list_items(owner_id, level=level, item_type=type)
    return ItemListResponse(items=items, total=len(items))


@app.post("/v1/assess/validate", response_model=FeasibilityReport)
def validate_config(
    request: ValidateRequest, service: AssemblyService = Depends(get_assembly_service)
) -> FeasibilityReport:
    try:
        return service.check_feasibility(request.owner_id, request.config)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/v1/assess/assemble", response_model=AssembleResponse, response_model_exclude_none=True)
def assemble_paper(
    request: AssembleRequest, service: AssemblyService = Depends(get_assembly_service)
) -> AssembleResponse:
    try:
        return service.assemble(request)
    except ValueError as exc:  # config errors and empty banks
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/v1/assess/commit", response_model=CommitPaperResponse)
def commit_paper(
    request: CommitPaperRequest, service: AssemblyService = Depends(get_assembly_service)
) -> CommitPaperResponse:
    return service.commit_paper(request)


@app.get("/v1/metrics")
def metrics() -> Dict[str, Any]:
    return METRICS.snapshot()


__all__ = ["app"]
