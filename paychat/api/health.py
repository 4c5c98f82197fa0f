from fastapi import APIRouter, Query
from typing import Dict, Any

from ..config import settings
from ..providers.llm import get_llm_provider

router = APIRouter()


@router.get("/healthz")
async def health_check(deep: bool = Query(False, description="Also ping the LLM provider")) -> Dict[str, Any]:
    """Health check endpoint reporting agent configuration"""

    llm_status: Dict[str, Any] = {
        "provider": settings.llm_provider,
        "model": settings.llm_model,
        "status": "configured" if settings.has_llm_key else "unavailable",
    }

    if deep and settings.has_llm_key:
        provider = get_llm_provider()
        llm_status.update(await provider.health_check())

    healthy = llm_status["status"] in ("configured", "healthy")

    return {
        "status": "healthy" if healthy else "degraded",
        "llm": llm_status,
        "payment_required": settings.payment_required,
        "directive_language": settings.directive_language,
    }
