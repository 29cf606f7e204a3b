"""Client for a PayPal-compatible v2 Orders API.

Only four calls are needed: an OAuth client-credentials token, order
creation, order lookup and capture. The buyer identity and plan travel in the
order's ``custom_id`` as JSON so the capture response can be checked against
the caller.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Protocol

import httpx
import structlog

from app.core.config import Settings
from app.core.errors import GatewayError, GatewayNotFoundError, GatewayTimeoutError
from app.economy.payments.catalog import PlanSpec
from app.economy.payments.types import CaptureOutcome, GatewayOrder, OrderDetails, OrderMetadata
from app.services.token_cache import AccessTokenCache

logger = structlog.get_logger(__name__)


class PaymentGateway(Protocol):
    async def create_order(self, plan: PlanSpec, *, user_id: str) -> GatewayOrder: ...

    async def get_order_details(self, order_id: str) -> OrderDetails: ...

    async def capture_order(self, order_id: str) -> CaptureOutcome: ...


def encode_order_metadata(*, user_id: str, plan_type: str) -> str:
    return json.dumps({"userId": user_id, "planType": plan_type}, separators=(",", ":"))


def decode_order_metadata(raw_custom_id: object) -> OrderMetadata | None:
    if not isinstance(raw_custom_id, str) or not raw_custom_id:
        return None
    try:
        parsed = json.loads(raw_custom_id)
    except json.JSONDecodeError:
        logger.warning("payment_gateway_custom_id_parse_failed")
        return None
    if not isinstance(parsed, dict):
        return None
    user_id = parsed.get("userId")
    plan_type = parsed.get("planType")
    if not isinstance(user_id, str) or not isinstance(plan_type, str):
        return None
    return OrderMetadata(user_id=user_id, plan_type=plan_type)


def _first(items: object) -> dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _parse_capture(body: dict[str, Any]) -> CaptureOutcome:
    purchase_unit = _first(body.get("purchase_units"))
    payments = purchase_unit.get("payments")
    capture = _first(payments.get("captures") if isinstance(payments, dict) else None)
    amount = capture.get("amount") if isinstance(capture.get("amount"), dict) else {}
    payer = body.get("payer") if isinstance(body.get("payer"), dict) else {}
    metadata = decode_order_metadata(capture.get("custom_id")) or decode_order_metadata(
        purchase_unit.get("custom_id")
    )
    return CaptureOutcome(
        status=str(body.get("status", "")),
        captured_amount=amount.get("value"),
        captured_currency=amount.get("currency_code"),
        transaction_id=capture.get("id"),
        payer_id=payer.get("payer_id"),
        metadata=metadata,
    )


class PayPalGatewayClient:
    def __init__(
        self,
        *,
        base_url: str,
        client_id: str,
        client_secret: str,
        frontend_url: str,
        brand_name: str,
        timeout_seconds: float,
        token_cache: AccessTokenCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._frontend_url = frontend_url.rstrip("/")
        self._brand_name = brand_name
        self._timeout = httpx.Timeout(timeout_seconds)
        self._token_cache = token_cache or AccessTokenCache()
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> PayPalGatewayClient:
        return cls(
            base_url=settings.payment_gateway_base_url,
            client_id=settings.payment_gateway_client_id,
            client_secret=settings.payment_gateway_client_secret,
            frontend_url=settings.frontend_url,
            brand_name=settings.payment_brand_name,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("payment_gateway_timeout", operation=operation)
            raise GatewayTimeoutError from exc
        except httpx.HTTPError as exc:
            logger.warning("payment_gateway_transport_failed", operation=operation, error=str(exc))
            raise GatewayError from exc

        if response.status_code == 401:
            self._token_cache.invalidate()
        if response.status_code == 404:
            raise GatewayNotFoundError("Invalid or expired order.")
        if response.is_error:
            logger.warning(
                "payment_gateway_request_failed",
                operation=operation,
                status_code=response.status_code,
            )
            raise GatewayError
        try:
            body = response.json()
        except ValueError as exc:
            logger.warning("payment_gateway_invalid_body", operation=operation)
            raise GatewayError from exc
        if not isinstance(body, dict):
            raise GatewayError
        return body

    async def get_access_token(self) -> str:
        cached = self._token_cache.get()
        if cached is not None:
            return cached

        body = await self._send(
            "POST",
            "/v1/oauth2/token",
            operation="access_token",
            auth=(self._client_id, self._client_secret),
            data={"grant_type": "client_credentials"},
        )
        token = body.get("access_token")
        if not isinstance(token, str) or not token:
            raise GatewayError
        expires_in = body.get("expires_in")
        self._token_cache.store(
            token,
            expires_in_seconds=float(expires_in) if isinstance(expires_in, (int, float)) else 0.0,
        )
        return token

    async def _auth_headers(self, *, request_id: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {await self.get_access_token()}"}
        if request_id is not None:
            headers["PayPal-Request-Id"] = request_id
        return headers

    async def create_order(self, plan: PlanSpec, *, user_id: str) -> GatewayOrder:
        amount = {"currency_code": plan.currency, "value": plan.amount}
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": f"{user_id}_{plan.plan_type}",
                    "description": plan.title,
                    "custom_id": encode_order_metadata(user_id=user_id, plan_type=plan.plan_type),
                    "amount": {**amount, "breakdown": {"item_total": amount}},
                    "items": [
                        {
                            "name": plan.item_name,
                            "quantity": "1",
                            "unit_amount": amount,
                            "category": "DIGITAL_GOODS",
                        }
                    ],
                }
            ],
            "application_context": {
                "brand_name": self._brand_name,
                "landing_page": "NO_PREFERENCE",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "PAY_NOW",
                "return_url": f"{self._frontend_url}/thank-you",
                "cancel_url": f"{self._frontend_url}/premium",
            },
        }
        body = await self._send(
            "POST",
            "/v2/checkout/orders",
            operation="create_order",
            json=payload,
            headers=await self._auth_headers(request_id=f"order-{user_id}-{uuid.uuid4().hex}"),
        )
        order_id = body.get("id")
        if not isinstance(order_id, str) or not order_id:
            raise GatewayError
        approval_url = next(
            (
                link.get("href")
                for link in body.get("links") or []
                if isinstance(link, dict) and link.get("rel") == "approve"
            ),
            None,
        )
        return GatewayOrder(
            order_id=order_id,
            approval_url=approval_url,
            status=str(body.get("status", "")),
        )

    async def get_order_details(self, order_id: str) -> OrderDetails:
        body = await self._send(
            "GET",
            f"/v2/checkout/orders/{order_id}",
            operation="get_order_details",
            headers=await self._auth_headers(),
        )
        purchase_unit = _first(body.get("purchase_units"))
        return OrderDetails(
            order_id=str(body.get("id", order_id)),
            status=str(body.get("status", "")),
            metadata=decode_order_metadata(purchase_unit.get("custom_id")),
        )

    async def capture_order(self, order_id: str) -> CaptureOutcome:
        # A stable request id makes the provider replay the first capture
        # response to concurrent or retried captures of the same order.
        headers = await self._auth_headers(request_id=f"capture-{order_id}")
        headers["Prefer"] = "return=representation"
        body = await self._send(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            operation="capture_order",
            json={},
            headers=headers,
        )
        return _parse_capture(body)
