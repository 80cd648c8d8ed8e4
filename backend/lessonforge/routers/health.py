from fastapi import APIRouter

from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
	return {"status": "ok", "claude_configured": bool(settings.anthropic_api_key)}
