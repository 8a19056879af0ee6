"""Notification dispatcher adapters."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from .logging import get_correlation_id, get_logger, log_with_extra
from ..application.ports.notifications import NotificationDispatcher, NotificationEvent
from ..domain.entities.booking import Booking


def booking_event_payload(booking: Booking, event: NotificationEvent, **context: Any) -> Dict[str, Any]:
    """Build the JSON body describing a booking event."""
    return {
        "event": event.value,
        "occurred_at": datetime.utcnow().isoformat() + "Z",
        "correlation_id": get_correlation_id(),
        "booking": {
            "id": str(booking.id),
            "number": booking.number,
            "status": booking.status.value,
            "priority": booking.priority.value,
            "required_skill": booking.required_skill.value,
            "scheduled_time": booking.scheduled_time.isoformat(),
            "assigned_agent_id": str(booking.assigned_agent_id) if booking.assigned_agent_id else None,
            "estimated_arrival": booking.estimated_arrival.isoformat() if booking.estimated_arrival else None,
            "customer_id": str(booking.customer_id) if booking.customer_id else None,
        },
        "context": {key: value for key, value in context.items() if value is not None},
    }


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes booking events to the application log."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or get_logger(__name__)

    async def notify(self, booking: Booking, event: NotificationEvent, **context: Any) -> None:
        level = logging.WARNING if event == NotificationEvent.UNASSIGNED_ESCALATION else logging.INFO
        log_with_extra(
            self._logger,
            level,
            f"Booking event {event.value}: {booking.number}",
            booking_id=str(booking.id),
            booking_number=booking.number,
            event=event.value,
            booking_status=booking.status.value,
            **{f"context_{key}": value for key, value in context.items()}
        )


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs booking events as JSON to a webhook endpoint.

    Errors from the endpoint are raised; the dispatch coordinator logs them
    without touching committed booking state.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self._url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._logger = get_logger(__name__)

    async def notify(self, booking: Booking, event: NotificationEvent, **context: Any) -> None:
        payload = booking_event_payload(booking, event, **context)
        client = self._get_client()

        response = await client.post(
            self._url,
            json=payload,
            headers={"X-Correlation-ID": payload["correlation_id"] or ""}
        )
        response.raise_for_status()

        self._logger.debug(
            "Webhook notification delivered",
            extra={
                "booking_id": str(booking.id),
                "event": event.value,
                "status_code": response.status_code
            }
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client
