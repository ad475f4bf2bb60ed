"""
Customer Identity Extraction

Derives the purchaser's email, name, and phone from a checkout session.
Checkout pages differ in where they collect the last name, so the custom
field lookup and the first-name source are configurable.
"""

from typing import List, Literal, Optional, Tuple

from contact_sync.config import settings
from contact_sync.models.stripe_events import PurchaseSession
from contact_sync.models.wix_records import CustomerIdentity
from contact_sync.utils.exceptions import MissingEmailException
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


def split_display_name(name: Optional[str]) -> Tuple[str, str]:
    """
    Split a free-text name into (first, last).

    >>> split_display_name("Jane Q Public")
    ('Jane', 'Q Public')
    """
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class IdentityExtractor:
    """Extracts a CustomerIdentity from a PurchaseSession"""

    def __init__(
        self,
        last_name_field_keys: Optional[List[str]] = None,
        last_name_field_labels: Optional[List[str]] = None,
        first_name_source: Optional[Literal["first_token", "display_name"]] = None,
    ):
        self.last_name_field_keys = (
            settings.last_name_field_keys if last_name_field_keys is None else last_name_field_keys
        )
        self.last_name_field_labels = (
            settings.last_name_field_labels
            if last_name_field_labels is None
            else last_name_field_labels
        )
        self.first_name_source = first_name_source or settings.first_name_source

    def extract(self, session: PurchaseSession) -> CustomerIdentity:
        """
        Raises:
            MissingEmailException: If neither email field is set
        """
        email = self._resolve_email(session)
        if not email:
            logger.warning("No customer email found in session", extra={"session_id": session.id})
            raise MissingEmailException(session.id)

        first_name, last_name = self._resolve_name(session)
        phone = ""
        if session.customer_details and session.customer_details.phone:
            phone = session.customer_details.phone

        logger.info(
            "Extracted customer identity",
            extra={
                "session_id": session.id,
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
            },
        )
        return CustomerIdentity(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )

    @staticmethod
    def _resolve_email(session: PurchaseSession) -> str:
        candidates = [session.customer_email]
        if session.customer_details:
            candidates.append(session.customer_details.email)
        for candidate in candidates:
            if candidate and candidate.strip():
                return candidate.strip()
        return ""

    def _resolve_name(self, session: PurchaseSession) -> Tuple[str, str]:
        display_name = session.display_name
        custom_last_name = self._custom_last_name(session)

        if custom_last_name:
            if self.first_name_source == "display_name":
                return display_name.strip(), custom_last_name
            first_name, _ = split_display_name(display_name)
            return first_name, custom_last_name

        return split_display_name(display_name)

    def _custom_last_name(self, session: PurchaseSession) -> str:
        for field in session.custom_fields:
            label = field.label.custom if field.label else None
            if field.key in self.last_name_field_keys or label in self.last_name_field_labels:
                if field.text_value:
                    return field.text_value
        return ""


# Global identity extractor instance
identity_extractor = IdentityExtractor()
