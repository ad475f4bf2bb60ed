"""
Health Check Endpoint
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from contact_sync.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic liveness check.
    Also reports which product matching strategies are configured.
    """
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.app_version,
            "matching": {
                "metadata_label_rules": len(settings.metadata_label_rules),
                "target_product_ids": len(settings.target_product_ids),
                "target_price_ids": len(settings.target_price_ids),
                "line_item_lookup": settings.line_item_lookup_enabled,
            },
            "processed_session_tracking": settings.processed_session_tracking,
        },
    )
