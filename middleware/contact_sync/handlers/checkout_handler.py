"""
Checkout Webhook Handler

Runs one Stripe webhook delivery through the pipeline:

    verify -> classify -> extract identity -> reconcile

and maps every terminal state to exactly one HTTP status and JSON body.
The Wix directory is only touched after the signature is verified and the
purchase is eligible. No exception escapes ``handle_webhook``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from contact_sync.handlers.contact_reconciler import ContactReconciler, contact_reconciler
from contact_sync.handlers.event_classifier import EventClassifier, event_classifier
from contact_sync.handlers.identity_extractor import IdentityExtractor, identity_extractor
from contact_sync.models.stripe_events import PurchaseSession
from contact_sync.models.wix_records import PurchaseDetails, ReconciliationResult
from contact_sync.services.dynamodb_service import ProcessedSessionStore, processed_session_store
from contact_sync.services.stripe_service import StripeService, stripe_service
from contact_sync.utils.exceptions import (
    LineItemLookupException,
    MissingEmailException,
    StripeException,
    StripeSignatureException,
    WixAPIException,
)
from contact_sync.utils.logging_config import bind_event_context, get_logger

logger = get_logger(__name__)


class PipelineOutcome(str, Enum):
    REJECTED = "rejected"
    IGNORED = "ignored"
    INELIGIBLE = "ineligible"
    MISSING_EMAIL = "missing_email"
    ALREADY_PROCESSED = "already_processed"
    DONE = "done"
    LOOKUP_FAILED = "line_item_lookup_failed"
    DIRECTORY_ERROR = "directory_error"
    INTERNAL_ERROR = "internal_error"


class WebhookResult(BaseModel):
    outcome: PipelineOutcome
    status_code: int
    body: Dict[str, Any] = Field(default_factory=dict)
    reconciliation: Optional[ReconciliationResult] = None


class CheckoutHandler:
    """Pipeline orchestrator for checkout.session.completed webhooks"""

    def __init__(
        self,
        stripe: Optional[StripeService] = None,
        classifier: Optional[EventClassifier] = None,
        extractor: Optional[IdentityExtractor] = None,
        reconciler: Optional[ContactReconciler] = None,
        session_store: Optional[ProcessedSessionStore] = None,
    ):
        self.stripe = stripe or stripe_service
        self.classifier = classifier or event_classifier
        self.extractor = extractor or identity_extractor
        self.reconciler = reconciler or contact_reconciler
        self.session_store = session_store or processed_session_store

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        try:
            return await self._run(payload, signature)

        except StripeSignatureException as e:
            logger.error("Webhook signature verification failed", extra={"error": e.message})
            return self._result(PipelineOutcome.REJECTED, 400, {"error": f"Webhook Error: {e.message}"})

        except LineItemLookupException as e:
            logger.error("Line item lookup failed", extra={"error": e.to_dict()})
            return self._result(PipelineOutcome.LOOKUP_FAILED, 500, {"error": e.message})

        except StripeException as e:
            logger.error(f"Invalid webhook: {e.message}", extra={"error": e.to_dict()})
            return self._result(PipelineOutcome.REJECTED, 400, {"error": f"Webhook Error: {e.message}"})

        except MissingEmailException as e:
            return self._result(PipelineOutcome.MISSING_EMAIL, 400, {"error": e.message})

        except WixAPIException as e:
            logger.error("Wix directory call failed", extra={"error": e.to_dict()})
            return self._result(
                PipelineOutcome.DIRECTORY_ERROR,
                500,
                {"error": "Directory error", "status": e.status_code, "details": e.body},
            )

        except Exception as e:
            logger.exception(
                f"Unexpected error processing webhook: {e}",
                extra={"error_type": type(e).__name__},
            )
            return self._result(PipelineOutcome.INTERNAL_ERROR, 500, {"error": "Internal server error"})

    async def _run(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        event = self.stripe.verify_webhook_signature(payload, signature)
        bind_event_context(event_id=event.id, event_type=event.type)

        classification = await self.classifier.classify(event)
        if classification.session is None:
            logger.info("Event type not handled, acknowledging", extra={"event_type": event.type})
            return self._result(PipelineOutcome.IGNORED, 200, {"received": True})

        if not classification.eligible:
            return self._result(
                PipelineOutcome.INELIGIBLE,
                200,
                {"received": True, "skipped": classification.reason},
            )

        session = classification.session
        bind_event_context(session_id=session.id)

        identity = self.extractor.extract(session)

        if await self.session_store.is_processed(session.id):
            logger.info("Checkout session already processed, skipping", extra={"session_id": session.id})
            return self._result(
                PipelineOutcome.ALREADY_PROCESSED,
                200,
                {"received": True, "skipped": "Already processed"},
            )

        reconciliation = await self.reconciler.reconcile(identity, self._purchase_details(session))

        logger.info(
            "Customer reconciled into Wix",
            extra={
                "email": identity.email,
                "action": reconciliation.action.value,
                "contact_id": reconciliation.contact_id,
                "matched_by": classification.matched_by,
            },
        )

        await self.session_store.mark_processed(
            session.id,
            {"action": reconciliation.action.value, "contact_id": reconciliation.contact_id},
        )

        return self._result(
            PipelineOutcome.DONE, 200, {"received": True}, reconciliation=reconciliation
        )

    @staticmethod
    def _purchase_details(session: PurchaseSession) -> PurchaseDetails:
        return PurchaseDetails(
            session_id=session.id,
            amount=session.amount_major,
            currency=session.currency.upper() if session.currency else None,
            purchased_at=datetime.now(timezone.utc).isoformat(),
        )

    @staticmethod
    def _result(
        outcome: PipelineOutcome,
        status_code: int,
        body: Dict[str, Any],
        reconciliation: Optional[ReconciliationResult] = None,
    ) -> WebhookResult:
        return WebhookResult(
            outcome=outcome,
            status_code=status_code,
            body=body,
            reconciliation=reconciliation,
        )


# Global checkout handler instance
checkout_handler = CheckoutHandler()
