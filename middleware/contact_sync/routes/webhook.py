"""
Stripe Webhook Endpoint

Hands the raw body and Stripe-Signature header to the checkout pipeline and
relays its status code and JSON body.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from contact_sync.handlers.checkout_handler import checkout_handler
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """
    Stripe webhook endpoint.

    The body is read as raw bytes; signature verification needs it exactly
    as Stripe sent it.
    """
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    result = await checkout_handler.handle_webhook(payload, signature)

    logger.info(
        "Stripe webhook handled",
        extra={"outcome": result.outcome.value, "status_code": result.status_code},
    )

    return JSONResponse(status_code=result.status_code, content=result.body)


@router.api_route(
    "/stripe",
    methods=["GET", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def stripe_webhook_method_not_allowed():
    """Only POST is accepted"""
    return JSONResponse(
        status_code=405,
        content={"error": "Method not allowed"},
        headers={"Allow": "POST"},
    )
