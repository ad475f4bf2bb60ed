"""
Tests for Stripe Service

Covers webhook signature verification and the line-item lookup with its
single retry on network errors.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from contact_sync.services.stripe_service import StripeService
from contact_sync.utils.exceptions import (
    LineItemLookupException,
    StripeException,
    StripeSignatureException,
)


@pytest.fixture
def service(stripe_webhook_secret):
    return StripeService(webhook_secret=stripe_webhook_secret)


@pytest.fixture
def no_sleep():
    with patch("contact_sync.utils.retry.asyncio.sleep", new=AsyncMock()) as mock:
        yield mock


def test_verify_valid_signature(service, make_event, sign_event):
    """Valid signature yields a parsed event"""
    payload, signature = sign_event(make_event())

    event = service.verify_webhook_signature(payload, signature)

    assert event.type == "checkout.session.completed"
    assert event.id == "evt_test_checkout_completed"
    assert event.event_object["id"] == "cs_test_123"


def test_verify_tampered_body(service, make_event, sign_event):
    """Changing the body after signing invalidates the signature"""
    payload, signature = sign_event(make_event())
    tampered = payload.replace(b"a@b.com", b"x@y.com")

    with pytest.raises(StripeSignatureException):
        service.verify_webhook_signature(tampered, signature)


def test_verify_reserialized_body_fails(service, make_event, sign_event):
    """Re-serializing the JSON (different whitespace) breaks verification"""
    event = make_event()
    payload, signature = sign_event(event)
    reserialized = json.dumps(json.loads(payload), indent=2).encode("utf-8")

    with pytest.raises(StripeSignatureException):
        service.verify_webhook_signature(reserialized, signature)


def test_verify_wrong_secret(make_event, sign_event):
    payload, signature = sign_event(make_event())

    with pytest.raises(StripeSignatureException):
        StripeService(webhook_secret="whsec_other").verify_webhook_signature(payload, signature)


def test_verify_missing_signature(service, make_event, sign_event):
    payload, _ = sign_event(make_event())

    with pytest.raises(StripeSignatureException) as exc_info:
        service.verify_webhook_signature(payload, None)

    assert "Missing Stripe-Signature header" in exc_info.value.message


def test_verify_empty_body(service):
    with pytest.raises(StripeSignatureException):
        service.verify_webhook_signature(b"", "t=123456,v1=test")


def test_verify_garbage_signature(service, make_event, sign_event):
    payload, _ = sign_event(make_event())

    with pytest.raises(StripeSignatureException):
        service.verify_webhook_signature(payload, "t=123456,v1=invalid_signature")


def test_verified_body_that_is_not_an_event(service, sign_event):
    """A correctly signed body without the event envelope is a payload error"""
    payload, signature = sign_event({"hello": "world"})

    with pytest.raises(StripeException) as exc_info:
        service.verify_webhook_signature(payload, signature)

    assert not isinstance(exc_info.value, StripeSignatureException)
    assert exc_info.value.message == "Invalid webhook payload"




def line_item(item_id, product="prod_other", price="price_other"):
    return {"id": item_id, "price": {"id": price, "product": product}}


def page(items, has_more=False):
    return {"object": "list", "data": items, "has_more": has_more}


@pytest.mark.asyncio
async def test_get_line_items(service):
    items_page = page(
        [
            line_item("li_1"),
            {"id": "li_2", "price": {"id": "price_X", "product": {"id": "prod_X", "name": "Deck"}}},
        ]
    )

    with patch(
        "stripe.checkout.Session.list_line_items", return_value=items_page
    ) as mock_list:
        items = await service.get_line_items("cs_test_123")

    mock_list.assert_called_once_with("cs_test_123", limit=100)
    assert [(i.product_id, i.price_id) for i in items] == [
        ("prod_other", "price_other"),
        ("prod_X", "price_X"),
    ]


@pytest.mark.asyncio
async def test_get_line_items_reads_every_page(service):
    """A tracked product past the first page is still returned"""
    first = page([line_item(f"li_{n}") for n in range(1, 101)], has_more=True)
    second = page([line_item("li_101", product="prod_X", price="price_X")])

    with patch(
        "stripe.checkout.Session.list_line_items", side_effect=[first, second]
    ) as mock_list:
        items = await service.get_line_items("cs_test_123")

    assert mock_list.call_count == 2
    assert mock_list.call_args_list[1].kwargs == {"limit": 100, "starting_after": "li_100"}
    assert len(items) == 101
    assert items[-1].product_id == "prod_X"


@pytest.mark.asyncio
async def test_get_line_items_stripe_object_shape(service):
    """Attribute-style Stripe objects are read the same way as dicts"""
    price = MagicMock(spec=["id", "product"])
    price.id = "price_X"
    price.product = "prod_X"
    item = MagicMock(spec=["id", "price"])
    item.id = "li_1"
    item.price = price
    items_page = MagicMock(spec=["data", "has_more"])
    items_page.data = [item]
    items_page.has_more = False

    with patch("stripe.checkout.Session.list_line_items", return_value=items_page):
        items = await service.get_line_items("cs_test_123")

    assert items[0].product_id == "prod_X"
    assert items[0].price_id == "price_X"


@pytest.mark.asyncio
async def test_get_line_items_retries_once_on_network_error(service, no_sleep):
    items_page = page([line_item("li_1", product="prod_X", price="price_X")])

    with patch(
        "stripe.checkout.Session.list_line_items",
        side_effect=[stripe.APIConnectionError("connection reset"), items_page],
    ) as mock_list:
        items = await service.get_line_items("cs_test_123")

    assert mock_list.call_count == 2
    assert items[0].product_id == "prod_X"
    no_sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_network_error_on_later_page_restarts_listing(service, no_sleep):
    first = page([line_item("li_1")], has_more=True)
    second = page([line_item("li_2", product="prod_X")])

    with patch(
        "stripe.checkout.Session.list_line_items",
        side_effect=[first, stripe.APIConnectionError("connection reset"), first, second],
    ) as mock_list:
        items = await service.get_line_items("cs_test_123")

    assert mock_list.call_count == 4
    assert [i.product_id for i in items] == ["prod_other", "prod_X"]


@pytest.mark.asyncio
async def test_get_line_items_fails_after_second_network_error(service, no_sleep):
    with patch(
        "stripe.checkout.Session.list_line_items",
        side_effect=stripe.APIConnectionError("connection reset"),
    ) as mock_list:
        with pytest.raises(LineItemLookupException) as exc_info:
            await service.get_line_items("cs_test_123")

    assert mock_list.call_count == 2
    assert exc_info.value.details["session_id"] == "cs_test_123"


@pytest.mark.asyncio
async def test_get_line_items_does_not_retry_api_errors(service, no_sleep):
    with patch(
        "stripe.checkout.Session.list_line_items",
        side_effect=stripe.InvalidRequestError("No such checkout.session", "id"),
    ) as mock_list:
        with pytest.raises(LineItemLookupException):
            await service.get_line_items("cs_missing")

    assert mock_list.call_count == 1
    no_sleep.assert_not_awaited()
