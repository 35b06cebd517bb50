"""
Outbound delivery channels

WhatsAppDeliveryChannel talks to the WhatsApp Cloud API over httpx. Audio
replies stored locally are uploaded as media first; public URLs are sent as
links. RecordingDeliveryChannel keeps sent messages in memory for dry runs.
"""

import asyncio
import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from .error_handling import describe_error, with_timeout
from .interfaces import DeliveryChannel, MetricsSink
from .models import AudioMessage, OutgoingMessage, SendResult, TextMessage

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    """Result of a bounded-retry send"""
    success: bool
    attempts: int
    result: Optional[SendResult] = None
    error: Optional[str] = None


class RetryingSender:
    """
    Sends one message with a bounded number of attempts.

    A SendResult with success=False, an exception or a per-attempt timeout
    all count as a failed attempt. Attempts are separated by a fixed interval.
    """

    def __init__(
        self,
        channel: DeliveryChannel,
        max_attempts: int = 3,
        retry_interval: float = 5.0,
        attempt_timeout: float = 10.0,
        metrics: Optional[MetricsSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.channel = channel
        self.max_attempts = max_attempts
        self.retry_interval = retry_interval
        self.attempt_timeout = attempt_timeout
        self.metrics = metrics
        self._sleep = sleep

    async def send(self, recipient: str, payload: OutgoingMessage) -> DeliveryOutcome:
        kind = type(payload).__name__
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                if self.metrics:
                    self.metrics.increment('delivery_retries', tags={'kind': kind})
                logger.info(f"Retrying {kind} delivery in {self.retry_interval:.1f}s "
                            f"(attempt {attempt}/{self.max_attempts})")
                await self._sleep(self.retry_interval)

            try:
                result = await with_timeout(
                    lambda: self.channel.send(recipient, payload),
                    self.attempt_timeout,
                    "delivery"
                )
            except Exception as e:
                last_error = describe_error(e)
                logger.warning(f"{kind} delivery attempt {attempt} failed: {last_error}")
                continue

            if result.success:
                return DeliveryOutcome(True, attempt, result)

            last_error = result.error or "channel reported failure"
            logger.warning(f"{kind} delivery attempt {attempt} failed: {last_error}")

        logger.error(f"{kind} delivery to {recipient} failed after {self.max_attempts} attempts")
        return DeliveryOutcome(False, self.max_attempts, error=last_error)


@dataclass
class WhatsAppConfig:
    access_token: str = ""
    phone_number_id: str = ""
    graph_api_base: str = "https://graph.facebook.com/v19.0"
    timeout: float = 10.0
    max_connections: int = 20


class WhatsAppDeliveryChannel:
    """WhatsApp Cloud API sender returning a SendResult per message"""

    def __init__(self, config: WhatsAppConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout),
            limits=httpx.Limits(max_connections=config.max_connections)
        )

        self.stats = {
            'sent': 0,
            'failed': 0,
            'media_uploads': 0
        }

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.access_token}"}

    def _url(self, endpoint: str) -> str:
        return f"{self.config.graph_api_base}/{self.config.phone_number_id}/{endpoint}"

    async def send(self, recipient: str, payload: OutgoingMessage) -> SendResult:
        try:
            body = await self._build_body(recipient, payload)
            response = await self.http_client.post(self._url("messages"), json=body, headers=self._headers)
        except (httpx.HTTPError, OSError) as e:
            self.stats['failed'] += 1
            logger.warning(f"WhatsApp send to {recipient} failed: {e}")
            return SendResult(success=False, error=str(e))

        if response.status_code >= 400:
            self.stats['failed'] += 1
            error = self._error_message(response)
            logger.warning(f"WhatsApp send to {recipient} rejected ({response.status_code}): {error}")
            return SendResult(success=False, error=error)

        data = response.json()
        messages = data.get("messages") or [{}]
        self.stats['sent'] += 1
        return SendResult(success=True, message_id=messages[0].get("id"))

    async def _build_body(self, recipient: str, payload: OutgoingMessage) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient
        }
        if isinstance(payload, TextMessage):
            body["type"] = "text"
            body["text"] = {"preview_url": False, "body": payload.body}
        elif isinstance(payload, AudioMessage):
            body["type"] = "audio"
            if payload.audio_ref.startswith(("http://", "https://")):
                body["audio"] = {"link": payload.audio_ref}
            else:
                body["audio"] = {"id": await self._upload_media(payload.audio_ref)}
        else:
            raise TypeError(f"Unsupported outgoing message: {type(payload).__name__}")
        return body

    async def _upload_media(self, path: str) -> str:
        mime_type = mimetypes.guess_type(path)[0] or "audio/ogg"
        if path.endswith(".opus"):
            mime_type = "audio/ogg"

        with open(path, "rb") as f:
            content = f.read()

        response = await self.http_client.post(
            self._url("media"),
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (os.path.basename(path), content, mime_type)},
            headers=self._headers
        )
        response.raise_for_status()
        self.stats['media_uploads'] += 1
        return response.json()["id"]

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("message") or response.text
        except ValueError:
            return response.text

    async def close(self):
        await self.http_client.aclose()


class RecordingDeliveryChannel:
    """In-memory channel that records every message it is asked to send"""

    def __init__(self, fail_first: int = 0, always_fail: bool = False):
        self.fail_first = fail_first
        self.always_fail = always_fail
        self.attempts: List[Tuple[str, OutgoingMessage]] = []
        self.sent: List[Tuple[str, OutgoingMessage]] = []

    async def send(self, recipient: str, payload: OutgoingMessage) -> SendResult:
        self.attempts.append((recipient, payload))
        if self.always_fail or len(self.attempts) <= self.fail_first:
            return SendResult(success=False, error="recording channel configured to fail")

        self.sent.append((recipient, payload))
        logger.info(f"[dry-run] {type(payload).__name__} to {recipient}")
        return SendResult(success=True, message_id=f"dry-{uuid.uuid4().hex[:12]}")
