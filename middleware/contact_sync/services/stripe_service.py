"""
Stripe Service

Handles Stripe webhook signature verification and the checkout session
line-item lookup used by purchase classification.
"""

import asyncio
from typing import Any, Dict, List, Optional

import stripe
from pydantic import ValidationError

from contact_sync.config import settings
from contact_sync.models.stripe_events import LineItem, StripeEvent, stripe_field
from contact_sync.utils.exceptions import (
    LineItemLookupException,
    StripeException,
    StripeSignatureException,
)
from contact_sync.utils.logging_config import get_logger
from contact_sync.utils.retry import retry_async

logger = get_logger(__name__)

LINE_ITEMS_PAGE_SIZE = 100

# Configure Stripe
stripe.api_key = settings.stripe_api_key
if settings.stripe_api_version:
    stripe.api_version = settings.stripe_api_version


class StripeService:
    """Stripe webhook and API service"""

    def __init__(
        self,
        webhook_secret: Optional[str] = None,
        tolerance: Optional[int] = None,
    ):
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.tolerance = tolerance if tolerance is not None else settings.stripe_webhook_tolerance

    def verify_webhook_signature(
        self, payload: bytes, signature: Optional[str]
    ) -> StripeEvent:
        """
        Verify Stripe webhook signature using HMAC-SHA256.

        Args:
            payload: Raw request body as bytes
            signature: Stripe-Signature header value

        Returns:
            Validated StripeEvent

        Raises:
            StripeSignatureException: If signature verification fails
            StripeException: If the verified body is not a valid event
        """
        if not signature:
            raise StripeSignatureException("Missing Stripe-Signature header")
        if not payload:
            raise StripeSignatureException("Empty request body")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StripeSignatureException("Webhook body is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.webhook_secret,
                self.tolerance,
            )
        except stripe.SignatureVerificationError as e:
            logger.error(
                f"Stripe signature verification failed: {e}",
                extra={"error": str(e)},
            )
            raise StripeSignatureException(str(e) or "Invalid Stripe webhook signature") from e

        try:
            event = StripeEvent.model_validate_json(body)
        except ValidationError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise StripeException(
                "Invalid webhook payload",
                details={"error": str(e)},
            ) from e

        logger.info(
            "Webhook signature verified successfully",
            extra={"event_id": event.id, "event_type": event.type},
        )
        return event

    @staticmethod
    def _list_all_line_items(session_id: str) -> List[Any]:
        """Follow ``has_more`` until every line item of the session is read"""
        items: List[Any] = []
        params: Dict[str, Any] = {"limit": LINE_ITEMS_PAGE_SIZE}

        while True:
            page = stripe.checkout.Session.list_line_items(session_id, **params)
            data = list(stripe_field(page, "data") or [])
            items.extend(data)

            if not stripe_field(page, "has_more") or not data:
                return items
            params["starting_after"] = stripe_field(data[-1], "id")

    @retry_async(
        max_attempts=2,
        backoff_base=1,
        retryable_exceptions=(stripe.APIConnectionError,),
    )
    async def _fetch_line_items(self, session_id: str) -> List[Any]:
        return await asyncio.to_thread(self._list_all_line_items, session_id)

    async def get_line_items(self, session_id: str) -> List[LineItem]:
        """
        Retrieve the purchased line items of a checkout session.

        Every page is read. Transient network errors retry the listing
        once; any remaining failure raises, since skipping the lookup could
        drop an eligible purchase.

        Raises:
            LineItemLookupException: If the lookup fails
        """
        try:
            raw_items = await self._fetch_line_items(session_id)
        except stripe.StripeError as e:
            logger.error(
                f"Failed to retrieve line items for session {session_id}: {e}",
                extra={"session_id": session_id, "error": str(e)},
            )
            raise LineItemLookupException(session_id, details={"error": str(e)}) from e

        items = [LineItem.from_stripe(item) for item in raw_items]

        logger.info(
            "Retrieved checkout line items from Stripe",
            extra={"session_id": session_id, "line_item_count": len(items)},
        )
        return items


# Global Stripe service instance
stripe_service = StripeService()
