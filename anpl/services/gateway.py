"""
Razorpay client: order creation, order lookup and callback signature checks.

Talks to the REST API over aiohttp with basic auth and a bounded timeout.
Amounts sent to the gateway are in paise (minor units).
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from anpl.config import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Any failure talking to the payment gateway."""


class SignatureVerificationError(GatewayError):
    """Callback signature does not match the order / payment pair."""


@dataclass
class GatewayOrder:
    id:     str
    status: str        # "created" | "attempted" | "paid"
    amount: int        # paise

    @property
    def paid(self) -> bool:
        return self.status == "paid"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GatewayOrder":
        try:
            return cls(
                id=str(payload["id"]),
                status=str(payload.get("status", "")),
                amount=int(payload.get("amount", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"Malformed order payload: {payload!r}") from e


class RazorpayGateway:
    """
    Thin async wrapper over the Razorpay orders API.

    Usage:
        async with RazorpayGateway() as gateway:
            order = await gateway.create_order(80000, "INR", "rcpt_12")
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.key_id     = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.base_url   = (base_url or settings.RAZORPAY_API_URL).rstrip("/")
        self._timeout   = aiohttp.ClientTimeout(total=timeout or settings.GATEWAY_TIMEOUT_SECONDS)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RazorpayGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(self.key_id, self.key_secret),
                timeout=self._timeout,
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._http().request(method, url, **kwargs) as resp:
                payload = await resp.json(content_type=None)
                if resp.status >= 400:
                    raise GatewayError(f"{method} {path} failed with HTTP {resp.status}: {payload!r}")
                return payload
        except aiohttp.ClientError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise GatewayError(f"{method} {path} timed out") from e

    # ── Orders ────────────────────────────────────────────────────────────────

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        order = GatewayOrder.from_payload(
            await self._request(
                "POST", "/orders",
                json={"amount": amount, "currency": currency, "receipt": receipt},
            )
        )
        logger.info("Gateway order %s created for %s (%d %s)", order.id, receipt, amount, currency)
        return order

    async def fetch_order(self, order_id: str) -> GatewayOrder:
        return GatewayOrder.from_payload(await self._request("GET", f"/orders/{order_id}"))

    # ── Signatures ────────────────────────────────────────────────────────────

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        """HMAC-SHA256 of "order_id|payment_id" keyed with the API secret."""
        expected = hmac.new(
            self.key_secret.encode(),
            f"{order_id}|{payment_id}".encode(),
            hashlib.sha256,
        ).hexdigest()
        if not hmac.compare_digest(expected, signature or ""):
            raise SignatureVerificationError(f"Signature mismatch for order {order_id}")
