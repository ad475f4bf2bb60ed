"""
Stripe-Wix Contact Sync

Receives Stripe checkout webhooks, verifies them, and labels the purchaser's
Wix contact when the purchase is for the tracked product.
"""

__version__ = "1.0.0"
