"""Pipeline stages for Stripe checkout webhooks"""

from contact_sync.handlers.checkout_handler import checkout_handler
from contact_sync.handlers.contact_reconciler import contact_reconciler
from contact_sync.handlers.event_classifier import event_classifier
from contact_sync.handlers.identity_extractor import identity_extractor

__all__ = [
    "checkout_handler",
    "contact_reconciler",
    "event_classifier",
    "identity_extractor",
]
