import base64
import hashlib
import hmac
import json
import time

import pytest

from app.core.config import get_stripe_webhook_secret
from app.core.enums import PlatformName
from app.core.exceptions import ValidationError
from app.routes.webhooks import verify_shopify_hmac, verify_stripe_signature
from app.services.webhook_processor import WebhookOutcome

STRIPE_SECRET = "whsec_test"
SHOPIFY_SECRET = "shpss_test"


def stripe_header(body: bytes, secret=STRIPE_SECRET, timestamp=None):
    timestamp = int(timestamp or time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def shopify_hmac(body: bytes, secret=SHOPIFY_SECRET):
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


"""
1. Signatures
"""

def test_stripe_signature_accepts_any_v1():
    body = b'{"id": "evt_1"}'
    valid = stripe_header(body, timestamp=1_700_000_000).split(",")[1]

    header = f"t=1700000000,v1=deadbeef,{valid}"

    assert verify_stripe_signature(body, header, STRIPE_SECRET, now=1_700_000_010)


def test_stripe_signature_rejects_stale_timestamp():
    body = b"{}"
    header = stripe_header(body, timestamp=1_700_000_000)

    assert not verify_stripe_signature(body, header, STRIPE_SECRET, now=1_700_000_000 + 301)


@pytest.mark.parametrize("header", ["", "t=abc,v1=00", "v1=00", "t=1700000000"])
def test_stripe_signature_rejects_malformed_headers(header):
    assert not verify_stripe_signature(b"{}", header, STRIPE_SECRET, now=1_700_000_000)


def test_shopify_hmac():
    body = b'{"id": 1}'

    assert verify_shopify_hmac(body, shopify_hmac(body), SHOPIFY_SECRET)
    assert not verify_shopify_hmac(body + b" ", shopify_hmac(body), SHOPIFY_SECRET)


"""
2. Stripe endpoint
"""

def test_stripe_webhook_dispatches_to_processor(client, services, mocker):
    services.webhook_processor.handle_stripe = mocker.AsyncMock(
        return_value=WebhookOutcome(PlatformName.STRIPE, "evt_1", "processed")
    )
    body = json.dumps({"id": "evt_1", "account": "acct_1", "type": "checkout.session.completed"}).encode()

    response = client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": stripe_header(body)})

    assert response.status_code == 200
    assert response.json() == {"platform": "stripe", "event_id": "evt_1", "status": "processed", "applied": 0, "errors": []}
    services.store.get_account.assert_awaited_once_with(PlatformName.STRIPE, "acct_1")
    assert services.webhook_processor.handle_stripe.await_args.args[0] == "merchant_1"


def test_stripe_webhook_requires_signature(client):
    response = client.post("/webhooks/stripe", content=b"{}")

    assert response.status_code == 401
    assert response.json()["detail"] == "No signature provided"


def test_stripe_webhook_rejects_bad_signature(client, services):
    body = b'{"account": "acct_1"}'

    response = client.post(
        "/webhooks/stripe", content=body, headers={"Stripe-Signature": stripe_header(body, secret="whsec_other")}
    )

    assert response.status_code == 401
    services.store.get_account.assert_not_awaited()


def test_stripe_webhook_unknown_account(client, services):
    services.store.get_account.return_value = None
    body = b'{"id": "evt_1", "account": "acct_x"}'

    response = client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": stripe_header(body)})

    assert response.status_code == 404


def test_stripe_webhook_without_secret_is_unavailable(client):
    client.app.dependency_overrides[get_stripe_webhook_secret] = lambda: ""

    response = client.post("/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=00"})

    assert response.status_code == 503


def test_processor_validation_error_is_400(client, services, mocker):
    services.webhook_processor.handle_stripe = mocker.AsyncMock(side_effect=ValidationError("not connected"))
    body = b'{"id": "evt_1", "account": "acct_1"}'

    response = client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": stripe_header(body)})

    assert response.status_code == 400


"""
3. Shopify endpoint
"""

def shopify_headers(body, topic="orders/create", **extra):
    headers = {
        "X-Shopify-Hmac-Sha256": shopify_hmac(body),
        "X-Shopify-Shop-Domain": "shop.myshopify.com",
        "X-Shopify-Topic": topic,
        "X-Shopify-Webhook-Id": "wh_1",
    }
    headers.update(extra)
    return headers


def test_shopify_webhook_dispatches_topic_and_id(client, services, mocker):
    services.webhook_processor.handle_shopify = mocker.AsyncMock(
        return_value=WebhookOutcome(PlatformName.SHOPIFY, "wh_1", "duplicate")
    )
    body = b'{"id": 1001, "line_items": []}'

    response = client.post("/webhooks/shopify", content=body, headers=shopify_headers(body))

    assert response.json()["status"] == "duplicate"
    services.webhook_processor.handle_shopify.assert_awaited_once_with(
        "merchant_1", "orders/create", {"id": 1001, "line_items": []}, webhook_id="wh_1"
    )
    services.store.get_account.assert_awaited_once_with(PlatformName.SHOPIFY, "shop.myshopify.com")


def test_shopify_webhook_missing_headers(client):
    response = client.post("/webhooks/shopify", content=b"{}", headers={"X-Shopify-Topic": "orders/create"})

    assert response.status_code == 400


def test_shopify_webhook_bad_hmac(client):
    body = b"{}"

    response = client.post(
        "/webhooks/shopify", content=body, headers=shopify_headers(body, **{"X-Shopify-Hmac-Sha256": "bm9wZQ=="})
    )

    assert response.status_code == 401


def test_shopify_webhook_invalid_json(client):
    body = b"not json"

    response = client.post("/webhooks/shopify", content=body, headers=shopify_headers(body))

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid JSON payload"


"""
4. Etsy endpoint
"""

def test_etsy_webhook_requires_signature_headers(client):
    response = client.post("/webhooks/etsy", json={"shop_id": 1})

    assert response.status_code == 400


def test_etsy_webhook_resolves_shop(client, services, mocker):
    services.webhook_processor.handle_etsy = mocker.AsyncMock(
        return_value=WebhookOutcome(PlatformName.ETSY, "receipt_created:5:", "processed")
    )

    response = client.post(
        "/webhooks/etsy",
        json={"shop_id": 12345, "event_type": "receipt_created", "receipt_id": 5},
        headers={"x-etsy-signature": "sig", "x-etsy-timestamp": "1700000000"},
    )

    assert response.status_code == 200
    services.store.get_account.assert_awaited_once_with(PlatformName.ETSY, "12345")
