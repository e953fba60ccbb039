"""Web Push delivery: encrypt, sign, POST, classify.

Encryption is RFC 8291 ``aes128gcm`` (ECDH + HKDF + AES-128-GCM) done by
pywebpush's ``WebPusher``; the request itself goes through httpx so the
VAPID header, timeout and retry policy stay under our control.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import StrEnum

import httpx
from http_ece import ECEException
from pywebpush import WebPusher, WebPushException

from countdown.configs import configs
from countdown.core.push.payload import NotificationPayload
from countdown.core.push.vapid import VapidSigner
from countdown.models.push_subscription import PushSubscription

logger = logging.getLogger(__name__)

CONTENT_ENCODING = "aes128gcm"
PERMANENT_STATUSES = frozenset({404, 410})


class DeliveryStatus(StrEnum):
    DELIVERED = "delivered"
    TEMPORARY_FAILURE = "temporary_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    status: DeliveryStatus
    status_code: int | None = None
    retry_after: float | None = None
    attempts: int = 1
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @property
    def permanent(self) -> bool:
        return self.status is DeliveryStatus.PERMANENT_FAILURE


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds from a ``Retry-After`` header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - (now or datetime.now(timezone.utc))).total_seconds()
    return max(delta, 0.0)


def classify_response(response: httpx.Response) -> DeliveryResult:
    code = response.status_code
    if 200 <= code < 300:
        return DeliveryResult(DeliveryStatus.DELIVERED, status_code=code)
    if code in PERMANENT_STATUSES:
        return DeliveryResult(DeliveryStatus.PERMANENT_FAILURE, status_code=code, error=response.text[:200])
    return DeliveryResult(
        DeliveryStatus.TEMPORARY_FAILURE,
        status_code=code,
        retry_after=parse_retry_after(response.headers.get("Retry-After")),
        error=response.text[:200],
    )


def is_retryable(result: DeliveryResult) -> bool:
    """429, 5xx and transport failures are worth an immediate retry.

    Other 4xx answers mean the request itself is wrong (bad VAPID, payload
    too large); repeating it changes nothing.
    """
    if result.status is not DeliveryStatus.TEMPORARY_FAILURE:
        return False
    code = result.status_code
    return code is None or code == 429 or 500 <= code <= 599


def encrypt_payload(subscription: PushSubscription, data: bytes) -> bytes:
    """Encrypt *data* for the subscriber's keys; raises ``WebPushException`` on bad keys."""
    pusher = WebPusher(subscription.subscription_info())
    encoded = pusher.encode(data, content_encoding=CONTENT_ENCODING)
    return encoded["body"]


class PushDispatcher:
    """Delivers one notification to one subscription.

    Never touches the registry: the caller decides what a permanent
    failure means for the subscription.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        message_ttl: int | None = None,
        urgency: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        backoff_max: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        push = configs.Push
        self.message_ttl = message_ttl if message_ttl is not None else push.MessageTTLSeconds
        self.urgency = urgency or push.Urgency
        self.timeout = timeout if timeout is not None else push.TimeoutSeconds
        self.max_retries = max(0, max_retries if max_retries is not None else push.MaxRetries)
        self.backoff_base = backoff_base if backoff_base is not None else push.BackoffBaseSeconds
        self.backoff_max = backoff_max if backoff_max is not None else push.BackoffMaxSeconds
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def __aenter__(self) -> PushDispatcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _backoff(self, attempt: int, retry_after: float | None) -> float:
        delay = self.backoff_base * (2 ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.backoff_max)

    def build_headers(self, subscription: PushSubscription, signer: VapidSigner) -> dict[str, str]:
        return {
            "Authorization": signer.sign(subscription.endpoint),
            "Content-Encoding": CONTENT_ENCODING,
            "Content-Type": "application/octet-stream",
            "TTL": str(self.message_ttl),
            "Urgency": self.urgency,
        }

    async def _attempt(self, subscription: PushSubscription, body: bytes, signer: VapidSigner) -> DeliveryResult:
        try:
            response = await self._get_client().post(
                subscription.endpoint,
                content=body,
                headers=self.build_headers(subscription, signer),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            return DeliveryResult(DeliveryStatus.TEMPORARY_FAILURE, error=f"timeout: {e}")
        except httpx.TransportError as e:
            return DeliveryResult(DeliveryStatus.TEMPORARY_FAILURE, error=f"transport: {e}")
        return classify_response(response)

    async def deliver(
        self,
        subscription: PushSubscription,
        payload: NotificationPayload,
        signer: VapidSigner,
    ) -> DeliveryResult:
        """Encrypt and send *payload*, retrying transient failures a bounded number of times."""
        try:
            body = encrypt_payload(subscription, payload.to_bytes())
        except (WebPushException, ECEException, ValueError, TypeError) as e:
            # Key material the browser never could have produced
            logger.warning("Unusable subscription keys for %s: %s", subscription.endpoint[:60], e)
            return DeliveryResult(DeliveryStatus.PERMANENT_FAILURE, attempts=0, error=f"invalid keys: {e}")

        attempt = 1
        while True:
            result = await self._attempt(subscription, body, signer)
            if not is_retryable(result) or attempt > self.max_retries:
                break
            delay = self._backoff(attempt, result.retry_after)
            logger.debug(
                "Push to %s failed (%s), retry %d/%d in %.1fs",
                subscription.endpoint[:60],
                result.status_code or result.error,
                attempt,
                self.max_retries,
                delay,
            )
            await self._sleep(delay)
            attempt += 1

        final = DeliveryResult(
            status=result.status,
            status_code=result.status_code,
            retry_after=result.retry_after,
            attempts=attempt,
            error=result.error,
        )
        if final.delivered:
            logger.debug("Push delivered to %s (%s)", subscription.endpoint[:60], final.status_code)
        elif final.permanent:
            logger.info("Push endpoint gone (%s): %s", final.status_code, subscription.endpoint[:60])
        else:
            logger.warning(
                "Push to %s failed after %d attempt(s): %s",
                subscription.endpoint[:60],
                final.attempts,
                final.status_code or final.error,
            )
        return final
