"""Health check endpoint."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from klarity.graph.graph import get_orchestrator

router = APIRouter()


@router.get("/health")
async def health() -> JSONResponse:
    if get_orchestrator() is None:
        return JSONResponse(status_code=503, content={"status": "unavailable", "detail": "orchestrator not configured"})
    return JSONResponse(content={"status": "ok"})
