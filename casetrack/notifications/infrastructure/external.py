"""
Notification Delivery Channels
===============================

Transports used by the queue drain:
- Slack incoming webhook (Block Kit message, circuit breaker)
- Log channel for environments without a webhook
"""

import time
from typing import Any, Dict, Optional

import httpx

from casetrack.config import settings, TemplateType
from casetrack.core import DeliveryException
from casetrack.notifications.application.services import IDeliveryChannel
from casetrack.notifications.domain import Recipient, RenderedMessage
from casetrack.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


HEADER_EMOJI = {
    TemplateType.SLA_WARNING: ":warning:",
    TemplateType.SLA_BREACH: ":rotating_light:",
    TemplateType.ESCALATION: ":arrow_double_up:",
    TemplateType.GENERAL: ":information_source:",
}


class SlackDeliveryChannel(IDeliveryChannel):
    """
    Slack webhook channel with a circuit breaker.

    One attempt per call; the queue owns retries. Non-2xx responses and
    transport errors raise DeliveryException so the row is retried.
    """

    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        channel: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel or settings.slack_channel
        self._timeout = timeout_seconds or settings.slack_timeout_seconds
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    def _build_message(
        self,
        recipient: Recipient,
        template: Any,
        context: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        message = RenderedMessage.from_template(template, context)
        emoji = HEADER_EMOJI.get(template.template_type, HEADER_EMOJI[TemplateType.GENERAL])

        fields = [{"type": "mrkdwn", "text": f"*Recipient:*\n{recipient.recipient_type}: {recipient.value}"}]
        case_number = context.get("case_number")
        if case_number:
            case_url = settings.case_url_template.format(case_number=case_number)
            fields.insert(0, {"type": "mrkdwn", "text": f"*Case:*\n<{case_url}|{case_number}>"})
        if context.get("priority"):
            fields.append({"type": "mrkdwn", "text": f"*Priority:*\n{str(context['priority']).title()}"})
        if context.get("current_state"):
            fields.append({"type": "mrkdwn", "text": f"*State:*\n{context['current_state']}"})

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{emoji} {message.subject}"[:150], "emoji": True}
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": message.body}},
            {"type": "section", "fields": fields},
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Template: {template.name}"}]
            }
        ]

        return {
            "channel": self._channel,
            "text": message.subject,
            "blocks": blocks
        }

    async def send(self, recipient: Recipient, template: Any, context: Dict[str, Any]) -> bool:
        if not self._circuit_breaker.allow_request():
            raise DeliveryException(self.name, "circuit breaker open", {"recipient": str(recipient)})

        payload = self._build_message(recipient, template, context)
        client = await self._get_client()

        try:
            response = await client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            self._circuit_breaker.record_failure()
            raise DeliveryException(self.name, f"request failed: {e}", {"recipient": str(recipient)}) from e

        if response.status_code // 100 != 2:
            self._circuit_breaker.record_failure()
            raise DeliveryException(
                self.name,
                f"webhook returned {response.status_code}",
                {"status_code": response.status_code, "response": response.text[:500]}
            )

        self._circuit_breaker.record_success()
        logger.info(
            "Slack notification sent",
            extra={
                "case_number": context.get("case_number"),
                "template": template.name,
                "recipient": str(recipient)
            }
        )
        return True

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


class LogDeliveryChannel(IDeliveryChannel):
    """Writes the rendered message to the log. Always succeeds."""

    name = "log"

    async def send(self, recipient: Recipient, template: Any, context: Dict[str, Any]) -> bool:
        message = RenderedMessage.from_template(template, context)
        logger.info(
            "Notification delivered to log",
            extra={
                "recipient": str(recipient),
                "template": template.name,
                "subject": message.subject,
                "body": message.body,
                "case_number": context.get("case_number")
            }
        )
        return True


def build_delivery_channel() -> IDeliveryChannel:
    """Slack when a webhook is configured, the log channel otherwise."""
    if settings.slack_webhook_url:
        return SlackDeliveryChannel(settings.slack_webhook_url)
    logger.info("Slack webhook URL not configured, notifications go to the log")
    return LogDeliveryChannel()
