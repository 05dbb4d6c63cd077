import base64
import hashlib
import hmac
import json
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.config import get_shopify_webhook_secret, get_stripe_webhook_secret
from app.core.enums import PlatformName
from app.core.exceptions import BaseServiceError, status_code_for
from app.dependencies import get_inventory_store, get_webhook_processor
from app.services.inventory_store import InventoryStore
from app.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

STRIPE_SIGNATURE_TOLERANCE_SECONDS = 300


def verify_stripe_signature(body: bytes, header: str, secret: str, now: float = None) -> bool:
    """Check a Stripe-Signature header of the form 't=<ts>,v1=<hex>[,v1=<hex>...]'."""
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not signatures:
        return False
    try:
        if abs((now or time.time()) - int(timestamp)) > STRIPE_SIGNATURE_TOLERANCE_SECONDS:
            return False
    except ValueError:
        return False

    signed_payload = timestamp.encode() + b"." + body
    expected = hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, sig) for sig in signatures)


def verify_shopify_hmac(body: bytes, header: str, secret: str) -> bool:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, header)


def _parse_json(body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    return payload


async def _merchant_for(store: InventoryStore, platform: PlatformName, account_id) -> str:
    if not account_id:
        raise HTTPException(status_code=400, detail="Missing account identifier")
    account = await store.get_account(platform, str(account_id))
    if account is None:
        logger.error(f"{platform.value} webhook for unknown account {account_id}")
        raise HTTPException(status_code=404, detail="Customer not found")
    return account.merchant_id


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    webhook_secret: str = Depends(get_stripe_webhook_secret),
    store: InventoryStore = Depends(get_inventory_store),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Endpoint to receive Stripe (connected account) events"""
    if not webhook_secret:
        raise HTTPException(status_code=503, detail="Stripe webhook secret not configured")
    body = await request.body()
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        raise HTTPException(status_code=401, detail="No signature provided")
    if not verify_stripe_signature(body, signature, webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid signature")

    payload = _parse_json(body)
    merchant_id = await _merchant_for(store, PlatformName.STRIPE, payload.get("account"))
    try:
        outcome = await processor.handle_stripe(merchant_id, payload)
    except BaseServiceError as e:
        raise HTTPException(status_code=status_code_for(e), detail=str(e))
    return outcome.to_dict()


@router.post("/shopify")
async def shopify_webhook(
    request: Request,
    webhook_secret: str = Depends(get_shopify_webhook_secret),
    store: InventoryStore = Depends(get_inventory_store),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Endpoint to receive Shopify shop webhooks"""
    if not webhook_secret:
        raise HTTPException(status_code=503, detail="Shopify webhook secret not configured")
    body = await request.body()
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    shop_domain = request.headers.get("X-Shopify-Shop-Domain")
    topic = request.headers.get("X-Shopify-Topic")
    if not hmac_header or not shop_domain or not topic:
        raise HTTPException(status_code=400, detail="Missing headers")
    if not verify_shopify_hmac(body, hmac_header, webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid signature")

    payload = _parse_json(body)
    merchant_id = await _merchant_for(store, PlatformName.SHOPIFY, shop_domain)
    try:
        outcome = await processor.handle_shopify(
            merchant_id, topic, payload, webhook_id=request.headers.get("X-Shopify-Webhook-Id")
        )
    except BaseServiceError as e:
        raise HTTPException(status_code=status_code_for(e), detail=str(e))
    return outcome.to_dict()


@router.post("/etsy")
async def etsy_webhook(
    request: Request,
    store: InventoryStore = Depends(get_inventory_store),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Endpoint to receive Etsy shop events"""
    # TODO: verify x-etsy-signature once Etsy publishes its webhook signing scheme
    if not request.headers.get("x-etsy-signature") or not request.headers.get("x-etsy-timestamp"):
        raise HTTPException(status_code=400, detail="Missing headers")

    payload = _parse_json(await request.body())
    merchant_id = await _merchant_for(store, PlatformName.ETSY, payload.get("shop_id"))
    try:
        outcome = await processor.handle_etsy(merchant_id, payload)
    except BaseServiceError as e:
        raise HTTPException(status_code=status_code_for(e), detail=str(e))
    return outcome.to_dict()
