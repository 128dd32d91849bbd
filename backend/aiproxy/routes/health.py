"""Health check endpoint."""

from fastapi import APIRouter, Depends

from aiproxy.dependencies import get_generator
from aiproxy.generator import TextGenerator
from aiproxy.models import HealthResponse

router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health(generator: TextGenerator = Depends(get_generator)) -> HealthResponse:
    configured = generator.is_initialized()
    return HealthResponse(
        status="ok" if configured else "degraded",
        anthropic_configured=configured,
        chat_model=generator.model,
    )
