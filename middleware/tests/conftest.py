"""
Pytest Configuration and Fixtures

Provides test settings, Stripe signature helpers, sample checkout events,
and an in-memory Wix Contacts directory served through httpx.MockTransport.
"""

import copy
import hashlib
import hmac
import json
import os
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

# Settings are validated at import time, so configure them before importing the app
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("STRIPE_API_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("WIX_API_KEY", "wix_test_key")
os.environ.setdefault("WIX_SITE_ID", "site-123")
os.environ.setdefault("TARGET_LABEL", "TARGET_LABEL")
os.environ.setdefault("TARGET_PRODUCT_IDS", '["prod_X"]')
os.environ.setdefault("TARGET_PRICE_IDS", '["price_X"]')
os.environ.setdefault(
    "METADATA_LABEL_RULES",
    '[{"key": "Label", "value": "RT2025"},'
    ' {"key": "Wix Label", "value": "Revolutionary Tarot", "match": "contains"}]',
)

import httpx
import pytest
from fastapi.testclient import TestClient

from contact_sync.main import app
from contact_sync.services.wix_service import WixService

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def test_client():
    """FastAPI test client"""
    return TestClient(app)


@pytest.fixture
async def async_client():
    """Async HTTP client for testing"""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def generate_stripe_signature(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """
    Generate valid Stripe webhook signature for testing.

    Args:
        payload: JSON payload as string
        secret: Webhook secret

    Returns:
        Stripe-Signature header value
    """
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.{payload}"

    signature = hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return f"t={timestamp},v1={signature}"


def build_event(session: Dict[str, Any], event_type: str = "checkout.session.completed") -> Dict[str, Any]:
    return {
        "id": "evt_test_checkout_completed",
        "object": "event",
        "api_version": "2024-10-28",
        "created": int(time.time()),
        "type": event_type,
        "livemode": False,
        "data": {"object": session},
    }


def signed_request(event: Dict[str, Any], secret: str = WEBHOOK_SECRET) -> Tuple[bytes, str]:
    """Serialize an event and sign the exact bytes"""
    payload = json.dumps(event, separators=(",", ":"))
    return payload.encode("utf-8"), generate_stripe_signature(payload, secret)


@pytest.fixture
def stripe_webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def sign_event(stripe_webhook_secret) -> Callable[[Dict[str, Any]], Tuple[bytes, str]]:
    """Factory returning (raw body, Stripe-Signature header) for an event"""

    def _sign(event: Dict[str, Any]) -> Tuple[bytes, str]:
        return signed_request(event, stripe_webhook_secret)

    return _sign


@pytest.fixture
def checkout_session() -> Dict[str, Any]:
    """Checkout session for the tracked product (matched via metadata product_id)"""
    return {
        "id": "cs_test_123",
        "object": "checkout.session",
        "customer_email": "a@b.com",
        "customer_details": {"email": "a@b.com", "name": "A B", "phone": None},
        "amount_total": 4500,
        "currency": "usd",
        "payment_status": "paid",
        "status": "complete",
        "metadata": {"product_id": "prod_X"},
        "custom_fields": [],
    }


@pytest.fixture
def make_event(checkout_session) -> Callable[..., Dict[str, Any]]:
    """Factory for checkout events with session overrides"""

    def _make(event_type: str = "checkout.session.completed", **overrides: Any) -> Dict[str, Any]:
        session = copy.deepcopy(checkout_session)
        session.update(overrides)
        return build_event(session, event_type)

    return _make


class FakeWixDirectory:
    """
    Minimal in-memory Wix Contacts v4 API.

    Implements query-by-email, create (rejecting duplicate emails with 409),
    and revision-checked PATCH. Every request is recorded.
    """

    def __init__(self):
        self.contacts: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.failures: Dict[str, Tuple[int, Any]] = {}
        self.hide_from_next_query = False
        self._next_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def service(self) -> WixService:
        return WixService(
            api_key="wix_test_key",
            site_id="site-123",
            base_url="https://wix.test",
            transport=self.transport,
        )

    def add_contact(
        self,
        email: str,
        labels: Optional[List[str]] = None,
        first: str = "",
        last: str = "",
        extended_fields: Optional[Dict[str, Any]] = None,
    ) -> str:
        contact_id = f"contact-{self._next_id}"
        self._next_id += 1
        self.contacts[contact_id] = {
            "id": contact_id,
            "revision": 1,
            "info": {
                "name": {"first": first, "last": last},
                "emails": {"items": [{"tag": "MAIN", "email": email, "primary": True}]},
                "phones": {"items": []},
                "labelKeys": {"items": list(labels or [])},
                "extendedFields": {"items": dict(extended_fields or {})},
            },
        }
        return contact_id

    def fail(self, operation: str, status_code: int, body: Any) -> None:
        """Make the next ``query``/``create``/``update`` call fail"""
        self.failures[operation] = (status_code, body)

    def requests_for(self, operation: str) -> List[httpx.Request]:
        return [r for r in self.requests if self._operation(r) == operation]

    @property
    def writes(self) -> List[httpx.Request]:
        return [r for r in self.requests if self._operation(r) in ("create", "update")]

    @staticmethod
    def _operation(request: httpx.Request) -> str:
        if request.method == "PATCH":
            return "update"
        if request.url.path.endswith("/query"):
            return "query"
        return "create"

    def _emails(self, contact: Dict[str, Any]) -> List[str]:
        return [item["email"] for item in contact["info"]["emails"]["items"]]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        operation = self._operation(request)
        body = json.loads(request.content) if request.content else {}

        if operation in self.failures:
            status_code, error_body = self.failures.pop(operation)
            return httpx.Response(status_code, json=error_body)

        if operation == "query":
            email = body["query"]["filter"]["info.emails.email"]["$eq"]
            if self.hide_from_next_query:
                self.hide_from_next_query = False
                return httpx.Response(200, json={"contacts": []})
            matches = [c for c in self.contacts.values() if email in self._emails(c)]
            return httpx.Response(200, json={"contacts": matches})

        if operation == "create":
            info = body["info"]
            new_emails = [item["email"] for item in info["emails"]["items"]]
            duplicate = any(
                email in self._emails(c) for c in self.contacts.values() for email in new_emails
            )
            if duplicate and not body.get("allowDuplicates", False):
                return httpx.Response(409, json={"message": "DUPLICATE_CONTACT_EXISTS"})
            contact_id = f"contact-{self._next_id}"
            self._next_id += 1
            self.contacts[contact_id] = {"id": contact_id, "revision": 1, "info": info}
            return httpx.Response(200, json={"contact": self.contacts[contact_id]})

        contact_id = request.url.path.rsplit("/", 1)[-1]
        contact = self.contacts.get(contact_id)
        if contact is None:
            return httpx.Response(404, json={"message": "CONTACT_NOT_FOUND"})
        if "revision" in body and body["revision"] != contact["revision"]:
            return httpx.Response(409, json={"message": "REVISION_MISMATCH"})
        contact["info"].update(body["info"])
        contact["revision"] += 1
        return httpx.Response(200, json={"contact": contact})


@pytest.fixture
def wix_directory() -> FakeWixDirectory:
    return FakeWixDirectory()
