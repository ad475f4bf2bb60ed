"""
Purchase Event Classifier

Decides whether a verified Stripe event is a completed checkout of the
tracked product. Matching strategies are tried in order and the first
match wins:

1. metadata_label - configured metadata label rules (exact or substring)
2. metadata_ids   - product/price ID carried in the session metadata
3. line_items     - product/price ID of any purchased line item (needs a
                    Stripe lookup unless the event already embeds them)
"""

from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from contact_sync.config import LabelRule, settings
from contact_sync.models.stripe_events import LineItem, PurchaseSession, StripeEvent
from contact_sync.services.stripe_service import StripeService, stripe_service
from contact_sync.utils.exceptions import StripeException
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class ClassificationResult(BaseModel):
    eligible: bool
    session: Optional[PurchaseSession] = None
    matched_by: Optional[str] = None
    reason: Optional[str] = None


def matches_label_rules(metadata: dict, rules: Iterable[LabelRule]) -> bool:
    for rule in rules:
        value = metadata.get(rule.key)
        if not value:
            continue
        if rule.match == "exact" and value == rule.value:
            return True
        if rule.match == "contains" and rule.value in value:
            return True
    return False


def matches_target_ids(
    product_id: Optional[str],
    price_id: Optional[str],
    product_ids: Sequence[str],
    price_ids: Sequence[str],
) -> bool:
    return bool(
        (product_id and product_id in product_ids)
        or (price_id and price_id in price_ids)
    )


class EventClassifier:
    """Classifies checkout events against the tracked product"""

    def __init__(
        self,
        label_rules: Optional[List[LabelRule]] = None,
        product_ids: Optional[List[str]] = None,
        price_ids: Optional[List[str]] = None,
        product_id_key: Optional[str] = None,
        price_id_key: Optional[str] = None,
        line_item_lookup: Optional[bool] = None,
        stripe: Optional[StripeService] = None,
    ):
        self.label_rules = settings.metadata_label_rules if label_rules is None else label_rules
        self.product_ids = settings.target_product_ids if product_ids is None else product_ids
        self.price_ids = settings.target_price_ids if price_ids is None else price_ids
        self.product_id_key = product_id_key or settings.metadata_product_id_key
        self.price_id_key = price_id_key or settings.metadata_price_id_key
        self.line_item_lookup = (
            settings.line_item_lookup_enabled if line_item_lookup is None else line_item_lookup
        )
        self.stripe = stripe or stripe_service

        self.strategies: Tuple[Tuple[str, Callable[[PurchaseSession], Awaitable[bool]]], ...] = (
            ("metadata_label", self._match_metadata_label),
            ("metadata_ids", self._match_metadata_ids),
            ("line_items", self._match_line_items),
        )

    async def classify(self, event: StripeEvent) -> ClassificationResult:
        """
        Classify a verified event.

        Raises:
            StripeException: If a checkout event does not carry a session
            LineItemLookupException: If the line-item lookup fails
        """
        if not event.is_checkout_completed:
            return ClassificationResult(eligible=False, reason=f"Unhandled event type {event.type}")

        try:
            session = event.purchase_session()
        except ValidationError as e:
            raise StripeException(
                "Invalid checkout session payload",
                details={"event_id": event.id, "error": str(e)},
            ) from e

        for name, strategy in self.strategies:
            if await strategy(session):
                logger.info(
                    "Tracked product purchase detected",
                    extra={"session_id": session.id, "matched_by": name},
                )
                return ClassificationResult(eligible=True, session=session, matched_by=name)

        logger.info(
            "Purchase is not for the tracked product, skipping",
            extra={"session_id": session.id, "metadata": session.metadata},
        )
        return ClassificationResult(
            eligible=False, session=session, reason="Not target product"
        )

    async def _match_metadata_label(self, session: PurchaseSession) -> bool:
        return matches_label_rules(session.metadata, self.label_rules)

    async def _match_metadata_ids(self, session: PurchaseSession) -> bool:
        return matches_target_ids(
            session.metadata.get(self.product_id_key),
            session.metadata.get(self.price_id_key),
            self.product_ids,
            self.price_ids,
        )

    async def _match_line_items(self, session: PurchaseSession) -> bool:
        if not (self.product_ids or self.price_ids):
            return False

        if any(self._line_item_matches(item) for item in session.line_items):
            return True
        # A complete embedded list that did not match needs no lookup
        if session.line_items and not session.line_items_has_more:
            return False
        if not self.line_item_lookup:
            return False

        session.line_items = await self.stripe.get_line_items(session.id)
        session.line_items_has_more = False
        return any(self._line_item_matches(item) for item in session.line_items)

    def _line_item_matches(self, item: LineItem) -> bool:
        return matches_target_ids(item.product_id, item.price_id, self.product_ids, self.price_ids)


# Global classifier instance
event_classifier = EventClassifier()
