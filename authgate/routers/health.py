"""
Health check endpoint.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from authgate.config import VERSION
from authgate.dependencies import AppSettings
from authgate.models import ApiResponse, HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get(
    "/health",
    response_model=ApiResponse[HealthResponse],
    operation_id="getHealth",
    summary="Health check",
)
async def get_health(request: Request, settings: AppSettings) -> ApiResponse[HealthResponse]:
    return ApiResponse(
        message="API is running healthy",
        data=HealthResponse(
            status="healthy",
            version=VERSION,
            environment=settings.environment,
            uptime=round(time.monotonic() - request.app.state.started_at, 3),
            timestamp=datetime.now(timezone.utc),
        ),
    )
