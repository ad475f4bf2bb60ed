"""
Wix Contact Models

Pydantic models for the customer identity pushed to Wix, the Wix Contacts v4
record shape, and the outcome of a reconciliation.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_TAG = "MAIN"
PHONE_TAG = "MAIN"


class CustomerIdentity(BaseModel):
    """Normalized purchaser identity. Names and phone are never None."""

    email: str = Field(min_length=1)
    first_name: str = ""
    last_name: str = ""
    phone: str = ""

    @field_validator("first_name", "last_name", "phone", mode="before")
    @classmethod
    def none_to_empty(cls, v: Optional[str]) -> str:
        return v or ""


class PurchaseDetails(BaseModel):
    """Last-purchase metadata written to Wix extended fields"""

    session_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    purchased_at: Optional[str] = Field(None, description="ISO-8601 timestamp")


class ReconcileAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class ReconciliationResult(BaseModel):
    action: ReconcileAction
    contact_id: Optional[str] = None


class DirectoryContact(BaseModel):
    """Wix contact as returned by the Contacts v4 API"""

    id: str
    revision: Optional[int] = None
    emails: List[str] = Field(default_factory=list)
    first_name: str = ""
    last_name: str = ""
    phones: List[str] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    extended_fields: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_wix(cls, data: Dict[str, Any]) -> "DirectoryContact":
        info = data.get("info") or {}
        name = info.get("name") or {}
        return cls(
            id=data["id"],
            revision=data.get("revision"),
            emails=[
                item["email"]
                for item in (info.get("emails") or {}).get("items", [])
                if item.get("email")
            ],
            first_name=name.get("first") or "",
            last_name=name.get("last") or "",
            phones=[
                item["phone"]
                for item in (info.get("phones") or {}).get("items", [])
                if item.get("phone")
            ],
            labels=list((info.get("labelKeys") or {}).get("items", [])),
            extended_fields=dict((info.get("extendedFields") or {}).get("items", {})),
        )

    def has_label(self, label: str) -> bool:
        return label in self.labels

    def custom_extended_fields(self) -> Dict[str, Any]:
        """Extended fields owned by the site (system fields are read-only)"""
        return {
            key: value
            for key, value in self.extended_fields.items()
            if key.startswith("custom.")
        }


def build_contact_info(
    identity: CustomerIdentity,
    labels: List[str],
    extended_fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the ``info`` object for a new contact.

    Emails and phones are always present as ``{"items": [...]}`` lists;
    the phones list is empty when there is no phone, and name plus email
    keep ``info`` non-empty.
    """
    phones: List[Dict[str, Any]] = []
    if identity.phone:
        phones.append({"tag": PHONE_TAG, "phone": identity.phone, "primary": True})

    info: Dict[str, Any] = {
        "name": {"first": identity.first_name, "last": identity.last_name},
        "emails": {
            "items": [{"tag": EMAIL_TAG, "email": identity.email, "primary": True}]
        },
        "phones": {"items": phones},
        "labelKeys": {"items": list(labels)},
    }
    if extended_fields:
        info["extendedFields"] = {"items": dict(extended_fields)}
    return info


def build_label_patch(
    labels: List[str],
    extended_fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the partial ``info`` for a label/extended-field update"""
    info: Dict[str, Any] = {"labelKeys": {"items": list(labels)}}
    if extended_fields:
        info["extendedFields"] = {"items": dict(extended_fields)}
    return info
