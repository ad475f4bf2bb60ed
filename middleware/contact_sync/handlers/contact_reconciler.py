"""
Contact Reconciler

Upserts the purchaser into Wix and makes sure the contact carries the
target label.

Idempotency comes from the label check alone: a contact that already has
the label is left untouched, so redelivered webhooks cost one query and no
writes. Last-purchase extended fields are last-write-wins whenever a write
does happen.
"""

from typing import Any, Dict, Optional

from contact_sync.config import settings
from contact_sync.models.wix_records import (
    CustomerIdentity,
    DirectoryContact,
    PurchaseDetails,
    ReconcileAction,
    ReconciliationResult,
    build_contact_info,
    build_label_patch,
)
from contact_sync.services.wix_service import WixService, wix_service
from contact_sync.utils.exceptions import WixAPIException
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class ContactReconciler:
    """Search-then-create-or-label reconciliation against Wix Contacts"""

    def __init__(
        self,
        wix: Optional[WixService] = None,
        target_label: Optional[str] = None,
        amount_field: Optional[str] = None,
        date_field: Optional[str] = None,
        session_field: Optional[str] = None,
    ):
        self.wix = wix or wix_service
        self.target_label = target_label or settings.target_label
        self.amount_field = settings.wix_purchase_amount_field if amount_field is None else amount_field
        self.date_field = settings.wix_purchase_date_field if date_field is None else date_field
        self.session_field = (
            settings.wix_purchase_session_field if session_field is None else session_field
        )

    async def reconcile(
        self,
        identity: CustomerIdentity,
        purchase: Optional[PurchaseDetails] = None,
    ) -> ReconciliationResult:
        """
        Create the contact, or merge the target label into the existing one.

        Raises:
            WixAPIException: If the query, create, or update call fails
        """
        extended_fields = self._purchase_fields(purchase)
        existing = await self.find_canonical_contact(identity.email)

        if existing is None:
            try:
                return await self._create(identity, extended_fields)
            except WixAPIException as e:
                if e.status_code != 409:
                    raise
                # Lost a race with a concurrent delivery that created the contact
                logger.warning(
                    "Wix reported a duplicate contact on create, switching to update",
                    extra={"email": identity.email},
                )
                existing = await self.find_canonical_contact(identity.email)
                if existing is None:
                    raise

        return await self._label(existing, extended_fields)

    async def find_canonical_contact(self, email: str) -> Optional[DirectoryContact]:
        """First contact Wix returns for the email, if any"""
        contacts = await self.wix.find_contacts_by_email(email)
        if not contacts:
            return None
        if len(contacts) > 1:
            logger.warning(
                "Multiple Wix contacts share this email, using the first one",
                extra={
                    "email": email,
                    "contact_ids": [contact.id for contact in contacts],
                },
            )
        return contacts[0]

    async def _create(
        self,
        identity: CustomerIdentity,
        extended_fields: Dict[str, Any],
    ) -> ReconciliationResult:
        info = build_contact_info(identity, [self.target_label], extended_fields)
        contact = await self.wix.create_contact(info)

        logger.info(
            "Created Wix contact with target label",
            extra={"contact_id": contact.id, "email": identity.email, "label": self.target_label},
        )
        return ReconciliationResult(action=ReconcileAction.CREATED, contact_id=contact.id)

    async def _label(
        self,
        contact: DirectoryContact,
        extended_fields: Dict[str, Any],
    ) -> ReconciliationResult:
        if contact.has_label(self.target_label):
            logger.info(
                "Wix contact already has target label, no update needed",
                extra={"contact_id": contact.id, "label": self.target_label},
            )
            return ReconciliationResult(action=ReconcileAction.UNCHANGED, contact_id=contact.id)

        labels = [*contact.labels, self.target_label]
        merged_fields = {**contact.custom_extended_fields(), **extended_fields}

        await self.wix.update_contact(
            contact.id,
            build_label_patch(labels, merged_fields),
            revision=contact.revision,
        )

        logger.info(
            "Added target label to existing Wix contact",
            extra={"contact_id": contact.id, "label": self.target_label},
        )
        return ReconciliationResult(action=ReconcileAction.UPDATED, contact_id=contact.id)

    def _purchase_fields(self, purchase: Optional[PurchaseDetails]) -> Dict[str, Any]:
        if purchase is None:
            return {}

        fields: Dict[str, Any] = {}
        if self.amount_field and purchase.amount is not None:
            fields[self.amount_field] = purchase.amount
        if self.date_field and purchase.purchased_at:
            fields[self.date_field] = purchase.purchased_at
        if self.session_field and purchase.session_id:
            fields[self.session_field] = purchase.session_id
        return fields


# Global contact reconciler instance
contact_reconciler = ContactReconciler()
