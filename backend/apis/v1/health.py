from datetime import datetime, timezone

from fastapi import APIRouter

from core.config import settings
from core.security import is_encryption_configured

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.app_version,
        "environment": settings.ENVIRONMENT,
        "encryptionConfigured": is_encryption_configured(),
        "demoMode": settings.demo_mode_enabled,
    }
