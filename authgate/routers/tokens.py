"""
Token validation endpoint.
"""

from fastapi import APIRouter

from authgate.dependencies import CurrentToken, GeneralRateLimit
from authgate.models import (
    ApiResponse,
    RateLimitInfo,
    TokenClaims,
    TokenValidationResponse,
)

router = APIRouter(prefix="/api", tags=["tokens"])


@router.get(
    "/validate-token",
    response_model=ApiResponse[TokenValidationResponse],
    operation_id="validateToken",
    summary="Check that a bearer access token is valid",
)
async def validate_token(rate: GeneralRateLimit, token: CurrentToken) -> ApiResponse[TokenValidationResponse]:
    return ApiResponse(
        message="Token is valid",
        data=TokenValidationResponse(
            token_valid=True,
            token_payload=TokenClaims(username=token.username, iat=token.iat, exp=token.exp),
            rate_limit=RateLimitInfo(remaining=rate.remaining, reset_time=rate.reset_time),
        ),
    )
