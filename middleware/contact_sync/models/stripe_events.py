"""
Stripe Event Models

Pydantic models for the Stripe webhook envelope and the checkout session
view used by classification and identity extraction.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


def stripe_field(obj: Any, name: str) -> Any:
    """Read a field from a plain dict or a StripeObject"""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class LineItem(BaseModel):
    """Purchased line item, reduced to the identifiers used for matching"""

    product_id: Optional[str] = None
    price_id: Optional[str] = None

    @classmethod
    def from_stripe(cls, item: Any) -> "LineItem":
        """
        Build from a Stripe line item (dict or StripeObject).

        ``price.product`` is an ID string unless it was expanded, in which
        case it is an object carrying its own ``id``.
        """
        price = stripe_field(item, "price")
        product = stripe_field(price, "product")
        if product is not None and not isinstance(product, str):
            product = stripe_field(product, "id")
        return cls(price_id=stripe_field(price, "id"), product_id=product)


class CustomerDetails(BaseModel):
    """checkout.session.customer_details"""

    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None


class CustomFieldLabel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    custom: Optional[str] = None
    type: Optional[str] = None


class CustomFieldText(BaseModel):
    model_config = ConfigDict(extra="ignore")

    value: Optional[str] = None


class CustomField(BaseModel):
    """Checkout custom field (only text fields carry a usable value)"""

    model_config = ConfigDict(extra="ignore")

    key: Optional[str] = None
    label: Optional[CustomFieldLabel] = None
    type: Optional[str] = None
    text: Optional[CustomFieldText] = None

    @property
    def text_value(self) -> str:
        if self.text and self.text.value:
            return self.text.value.strip()
        return ""


class PurchaseSession(BaseModel):
    """
    Checkout session fields relevant to eligibility and customer identity.

    The session ID is unique per checkout and is the natural idempotency
    key for a purchase.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(description="Checkout session ID")
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    amount_total: Optional[int] = Field(None, description="Amount in smallest currency unit")
    currency: Optional[str] = None
    payment_status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    custom_fields: List[CustomField] = Field(default_factory=list)
    line_items: List[LineItem] = Field(default_factory=list)
    line_items_has_more: bool = Field(
        default=False, description="Embedded line items are only the first page"
    )

    @model_validator(mode="before")
    @classmethod
    def capture_line_items_has_more(cls, data: Any) -> Any:
        if isinstance(data, dict):
            line_items = data.get("line_items")
            partial = (
                line_items
                and not isinstance(line_items, list)
                and stripe_field(line_items, "has_more")
            )
            if partial:
                data = {**data, "line_items_has_more": True}
        return data

    @field_validator("metadata", mode="before")
    @classmethod
    def coerce_metadata(cls, v: Any) -> Dict[str, str]:
        if not v:
            return {}
        return {str(key): str(value) for key, value in dict(v).items() if value is not None}

    @field_validator("custom_fields", mode="before")
    @classmethod
    def coerce_custom_fields(cls, v: Any) -> Any:
        return v or []

    @field_validator("line_items", mode="before")
    @classmethod
    def coerce_line_items(cls, v: Any) -> List[LineItem]:
        """Accept an expanded ``line_items`` list object or a plain list"""
        if not v:
            return []
        items = stripe_field(v, "data") if not isinstance(v, list) else v
        return [
            item if isinstance(item, LineItem) else LineItem.from_stripe(item)
            for item in items or []
        ]

    @property
    def display_name(self) -> str:
        if self.customer_details and self.customer_details.name:
            return self.customer_details.name
        return ""

    @property
    def amount_major(self) -> Optional[float]:
        """Amount total converted from cents"""
        if self.amount_total is None:
            return None
        return self.amount_total / 100


class StripeEventData(BaseModel):
    """Stripe event data wrapper"""

    object: Dict[str, Any] = Field(description="The Stripe object")
    previous_attributes: Optional[Dict[str, Any]] = Field(
        None, description="Previous object state for update events"
    )


class StripeEvent(BaseModel):
    """
    Stripe webhook event model.

    Only built by ``StripeService.verify_webhook_signature`` once the
    signature check has passed.
    """

    id: Optional[str] = Field(None, description="Unique event identifier")
    type: str = Field(description="Event type (e.g., checkout.session.completed)")
    created: Optional[int] = Field(None, description="Unix timestamp of event creation")
    livemode: bool = Field(default=False)
    data: StripeEventData = Field(description="Event data")
    api_version: Optional[str] = Field(None)

    @property
    def event_object(self) -> Dict[str, Any]:
        """Get the main event object"""
        return self.data.object

    @property
    def is_checkout_completed(self) -> bool:
        return self.type == CHECKOUT_SESSION_COMPLETED

    def purchase_session(self) -> PurchaseSession:
        """Parse the event object as a checkout session"""
        return PurchaseSession.model_validate(self.event_object)
