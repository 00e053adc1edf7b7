"""
Messaging Gateway — point-to-point queue sends and topic notifications.

Two capabilities, both addressed by *name* (resolved to a URL / ARN here):
  - send_to_queue(queue_name, payload)                 → SQS SendMessage
  - publish_notification(topic_name, payload, subject) → SNS Publish

Delivery policy:
  - Timeout: connect 5 s / read 10 s (configurable), botocore retries off
  - Retry: max 2 attempts after the first, backoff 1 s → 4 s
  - Missing queue/topic is not retried
  - Never raises on delivery failure; returns GatewayResult(ok=False).
    Callers escalate with result.raise_for_status() when they need to.

Payloads are serialised as JSON. A local endpoint (LocalStack) is used when
AWS_ENDPOINT_URL is configured.

Testability: pass stubbed ``sqs_client`` / ``sns_client`` to
AwsMessagingGateway(), or use InMemoryMessagingGateway.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from todo_app.core.exceptions import MessagingDeliveryError

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]    # sleep[0] after 1st fail, sleep[1] after 2nd

# ── Default timeouts (seconds) ─────────────────────────────────────────────
_DEFAULT_CONNECT_TIMEOUT = 5
_DEFAULT_READ_TIMEOUT = 10

# Error codes that mean the destination does not exist; retrying cannot help
_NON_RETRYABLE_CODES = frozenset({
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
    "NotFound",
    "NotFoundException",
    "InvalidParameter",
    "AuthorizationError",
})


class DestinationNotFoundError(Exception):
    """Raised internally when a topic name does not resolve to an ARN."""


class GatewayResult:
    """Structured return value from MessagingGateway calls.

    Attributes:
        ok:           True if the broker accepted the message.
        destination:  Queue or topic name the message was addressed to.
        message_id:   Broker-assigned message id, else None.
        error:        Human-readable error message or None.
        duration_ms:  Total time spent, including retries.
        attempts:     Number of delivery attempts made.
    """

    def __init__(
        self,
        ok: bool,
        destination: str,
        message_id: str | None = None,
        error: str | None = None,
        duration_ms: int = 0,
        attempts: int = 1,
    ) -> None:
        self.ok = ok
        self.destination = destination
        self.message_id = message_id
        self.error = error
        self.duration_ms = duration_ms
        self.attempts = attempts

    def raise_for_status(self) -> None:
        if not self.ok:
            raise MessagingDeliveryError(self.destination, self.error, self.attempts)

    def __repr__(self) -> str:
        state = "ok" if self.ok else f"error={self.error!r}"
        return f"<GatewayResult {self.destination} {state} attempts={self.attempts}>"


class MessagingGateway(ABC):
    """Capability interface consumed by the collaboration workflow."""

    @abstractmethod
    def send_to_queue(self, queue_name: str, payload: Any) -> GatewayResult:
        """Deliver ``payload`` to one consumer of ``queue_name``."""

    @abstractmethod
    def publish_notification(self, topic_name: str, payload: Any, subject: str) -> GatewayResult:
        """Fan ``payload`` out to every subscriber of ``topic_name``."""

    def ensure_resources(self, queue_name: str, topic_name: str) -> dict:
        """Create the queue and topic if the backend supports it."""
        return {"queue": queue_name, "topic": topic_name}


class InMemoryMessagingGateway(MessagingGateway):
    """Records every message instead of sending it.

    Used by the testing config and for local development without AWS.
    Set ``fail = True`` to make every call report a delivery failure.
    """

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.published: list[dict] = []
        self.fail = False

    def _next_id(self) -> str:
        return f"local-{len(self.sent) + len(self.published) + 1}"

    def send_to_queue(self, queue_name: str, payload: Any) -> GatewayResult:
        if self.fail:
            return GatewayResult(ok=False, destination=queue_name, error="Simulated delivery failure")
        message_id = self._next_id()
        self.sent.append({"queue": queue_name, "payload": payload, "message_id": message_id})
        logger.debug("Recorded queue message queue=%s id=%s", queue_name, message_id)
        return GatewayResult(ok=True, destination=queue_name, message_id=message_id)

    def publish_notification(self, topic_name: str, payload: Any, subject: str) -> GatewayResult:
        if self.fail:
            return GatewayResult(ok=False, destination=topic_name, error="Simulated delivery failure")
        message_id = self._next_id()
        self.published.append({
            "topic": topic_name, "payload": payload, "subject": subject, "message_id": message_id,
        })
        logger.debug("Recorded notification topic=%s subject=%s id=%s", topic_name, subject, message_id)
        return GatewayResult(ok=True, destination=topic_name, message_id=message_id)

    def reset(self) -> None:
        self.sent.clear()
        self.published.clear()
        self.fail = False


class AwsMessagingGateway(MessagingGateway):
    """SQS + SNS gateway.

    Clients are created lazily from region/endpoint settings unless injected.
    Queue URLs and topic ARNs are cached per name after first resolution.

    Usage:
        gateway = AwsMessagingGateway(region="eu-central-1")
        result = gateway.send_to_queue("todo-sharing", {"token": "..."})
        if not result.ok:
            ...
    """

    def __init__(
        self,
        sqs_client: Any | None = None,
        sns_client: Any | None = None,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        connect_timeout: int = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: int = _DEFAULT_READ_TIMEOUT,
    ) -> None:
        self._sqs = sqs_client
        self._sns = sns_client
        self.region = region
        self.endpoint_url = endpoint_url
        self._boto_config = BotoConfig(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": 1, "mode": "standard"},  # retries handled here
        )
        self._queue_urls: dict[str, str] = {}
        self._topic_arns: dict[str, str] = {}

    # ── Clients ───────────────────────────────────────────────────────────────

    def _client(self, service: str):
        return boto3.client(
            service,
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            config=self._boto_config,
        )

    @property
    def sqs(self):
        if self._sqs is None:
            self._sqs = self._client("sqs")
        return self._sqs

    @property
    def sns(self):
        if self._sns is None:
            self._sns = self._client("sns")
        return self._sns

    # ── Name resolution ───────────────────────────────────────────────────────

    def resolve_queue_url(self, queue_name: str) -> str:
        """Return the queue URL for ``queue_name`` (URLs pass through)."""
        if queue_name.startswith(("https://", "http://")):
            return queue_name
        url = self._queue_urls.get(queue_name)
        if url is None:
            url = self.sqs.get_queue_url(QueueName=queue_name)["QueueUrl"]
            self._queue_urls[queue_name] = url
        return url

    def resolve_topic_arn(self, topic_name: str) -> str:
        """Return the topic ARN for ``topic_name`` (ARNs pass through).

        SNS has no lookup-by-name call, so topics are listed and matched on
        the last ARN segment.
        """
        if topic_name.startswith("arn:"):
            return topic_name
        arn = self._topic_arns.get(topic_name)
        if arn is not None:
            return arn
        paginator = self.sns.get_paginator("list_topics")
        for page in paginator.paginate():
            for topic in page.get("Topics", []):
                candidate = topic["TopicArn"]
                if candidate.rsplit(":", 1)[-1] == topic_name:
                    self._topic_arns[topic_name] = candidate
                    return candidate
        raise DestinationNotFoundError(f"SNS topic {topic_name!r} does not exist")

    # ── Core dispatcher ───────────────────────────────────────────────────────

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        if isinstance(exc, DestinationNotFoundError):
            return False
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "")
            return code not in _NON_RETRYABLE_CODES
        return True

    def _deliver(self, destination: str, operation: Callable[[], dict]) -> GatewayResult:
        """Run ``operation`` with retries; never raises.

        ``operation`` performs one broker call and returns the raw response,
        which must carry a ``MessageId``.
        """
        t0 = time.perf_counter()
        last_error = "Unknown error"
        attempts = 0

        for attempt in range(_RETRY_MAX + 1):  # 0, 1, 2
            attempts = attempt + 1
            try:
                response = operation()
                return GatewayResult(
                    ok=True,
                    destination=destination,
                    message_id=response.get("MessageId"),
                    duration_ms=int((time.perf_counter() - t0) * 1000),
                    attempts=attempts,
                )
            except (BotoCoreError, ClientError, DestinationNotFoundError) as exc:
                last_error = str(exc)[:500]
                logger.warning(
                    "Messaging delivery failed attempt=%d/%d destination=%s error=%s",
                    attempts, _RETRY_MAX + 1, destination, last_error,
                    extra={"destination": destination},
                )
                if not self._is_retryable(exc):
                    break

            # Sleep before retry (except after last attempt)
            if attempt < _RETRY_MAX:
                sleep_s = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                logger.info("Retrying delivery to %s in %ss (attempt %d)", destination, sleep_s, attempt + 2)
                time.sleep(sleep_s)

        return GatewayResult(
            ok=False,
            destination=destination,
            error=last_error,
            duration_ms=int((time.perf_counter() - t0) * 1000),
            attempts=attempts,
        )

    # ── Capabilities ──────────────────────────────────────────────────────────

    def send_to_queue(self, queue_name: str, payload: Any) -> GatewayResult:
        body = json.dumps(payload, default=str)

        def _send():
            return self.sqs.send_message(
                QueueUrl=self.resolve_queue_url(queue_name),
                MessageBody=body,
            )

        result = self._deliver(queue_name, _send)
        if result.ok:
            logger.info("Queued message queue=%s id=%s", queue_name, result.message_id,
                        extra={"destination": queue_name})
        return result

    def publish_notification(self, topic_name: str, payload: Any, subject: str) -> GatewayResult:
        message = json.dumps(payload, default=str)

        def _publish():
            return self.sns.publish(
                TopicArn=self.resolve_topic_arn(topic_name),
                Message=message,
                Subject=subject,
            )

        result = self._deliver(topic_name, _publish)
        if result.ok:
            logger.info("Published notification topic=%s subject=%r id=%s",
                        topic_name, subject, result.message_id,
                        extra={"destination": topic_name})
        return result

    def ensure_resources(self, queue_name: str, topic_name: str) -> dict:
        """Create the sharing queue and updates topic (both calls are idempotent)."""
        queue_url = self.sqs.create_queue(QueueName=queue_name)["QueueUrl"]
        topic_arn = self.sns.create_topic(Name=topic_name)["TopicArn"]
        self._queue_urls[queue_name] = queue_url
        self._topic_arns[topic_name] = topic_arn
        logger.info("Messaging resources ready queue=%s topic=%s", queue_url, topic_arn)
        return {"queue": queue_url, "topic": topic_arn}


def build_messaging_gateway(config) -> MessagingGateway:
    """Build the gateway selected by ``MESSAGING_BACKEND`` (``aws`` | ``memory``)."""
    backend = (config.get("MESSAGING_BACKEND") or "aws").lower()
    if backend == "memory":
        return InMemoryMessagingGateway()
    if backend == "aws":
        return AwsMessagingGateway(
            region=config.get("AWS_REGION"),
            endpoint_url=config.get("AWS_ENDPOINT_URL"),
            connect_timeout=config.get("MESSAGING_CONNECT_TIMEOUT", _DEFAULT_CONNECT_TIMEOUT),
            read_timeout=config.get("MESSAGING_READ_TIMEOUT", _DEFAULT_READ_TIMEOUT),
        )
    raise ValueError(f"Unknown MESSAGING_BACKEND: {backend!r}")
