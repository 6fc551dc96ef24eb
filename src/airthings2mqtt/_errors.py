"""Structured error publication.

Converts Airthings API failures into structured JSON payloads and
publishes them to MQTT error topics, so that an unattended bridge's
problems are observable remotely.

Topic layout::

    {prefix}/error              ← all errors
    {prefix}/{device_id}/error  ← per-device errors (when device is known)

Payload schema::

    {
        "error_type": "auth_error",
        "message": "Airthings rejected the client credentials (HTTP 401)",
        "device": "2930012345" | null,
        "timestamp": "2026-02-14T12:34:56+00:00",
        "details": {}
    }

Errors are events, not last-known state: messages are not retained.
Publication is QoS 1 and fire-and-forget.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

from airthings2mqtt._exceptions import (
    AuthError,
    ForbiddenError,
    HttpError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
)
from airthings2mqtt._mqtt import MqttPort

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TYPE_MAP: dict[type[Exception], str] = {
    AuthError: "auth_error",
    ForbiddenError: "forbidden",
    RateLimitError: "rate_limited",
    RequestTimeoutError: "timeout",
    HttpError: "http_error",
    NetworkError: "network_error",
}
"""Machine-readable ``error_type`` strings for the API failure taxonomy."""

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """Structured error event ready for JSON serialisation."""

    error_type: str
    message: str
    device: str | None
    timestamp: str
    details: dict[str, object] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self))


# ---------------------------------------------------------------------------
# Payload builder
# ---------------------------------------------------------------------------


def build_error_payload(
    error: Exception,
    *,
    error_type_map: dict[type[Exception], str] | None = None,
    device: str | None = None,
    details: dict[str, object] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ErrorPayload:
    """Convert an exception into an :class:`ErrorPayload`.

    Looks up the exact class of the exception; subclasses are not
    matched.  Unmapped types fall back to ``"error"``.

    Args:
        error: The exception to convert.
        error_type_map: Exception type to ``error_type`` string.
        device: Optional device id to include in the payload.
        details: Optional additional context.
        clock: Optional callable returning the timestamp, defaults to
            ``datetime.now(UTC)``.
    """
    resolved_map = error_type_map or {}
    error_type = resolved_map.get(type(error), "error")
    now = clock() if clock is not None else datetime.now(UTC)
    return ErrorPayload(
        error_type=error_type,
        message=str(error),
        device=device,
        timestamp=now.isoformat(),
        details=details or {},
    )


def _details_for(error: Exception) -> dict[str, object]:
    if isinstance(error, RateLimitError) and error.retry_after is not None:
        return {"retry_after": error.retry_after}
    if isinstance(error, HttpError | AuthError) and error.status is not None:
        return {"status": error.status}
    return {}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class ErrorPublisher:
    """Publishes structured error payloads to MQTT.

    Args:
        mqtt: MQTT port used for publishing.
        topic_prefix: Base prefix for error topics.
        error_type_map: Exception type to machine-readable type string.
        clock: Optional wall-clock callable for deterministic testing.
    """

    mqtt: MqttPort
    topic_prefix: str
    error_type_map: dict[type[Exception], str] = field(
        default_factory=lambda: dict(DEFAULT_ERROR_TYPE_MAP)
    )
    clock: Callable[[], datetime] | None = field(default=None, repr=False)

    async def publish(
        self,
        error: Exception,
        *,
        device: str | None = None,
    ) -> None:
        """Publish to ``{prefix}/error`` and, with *device*, its own topic.

        Failures at any stage (build, serialise, publish) are logged and
        never propagated.
        """
        try:
            payload = build_error_payload(
                error,
                error_type_map=self.error_type_map,
                device=device,
                details=_details_for(error),
                clock=self.clock,
            )
            payload_json = payload.to_json()
        except Exception:
            logger.exception(
                "Failed to build error payload for %r (device=%s)",
                error,
                device,
            )
            return

        logger.warning(
            "Publishing error: %s (type=%s, device=%s)",
            payload.message,
            payload.error_type,
            device,
        )
        await self._safe_publish(f"{self.topic_prefix}/error", payload_json)

        if device is not None:
            await self._safe_publish(
                f"{self.topic_prefix}/{device}/error",
                payload_json,
            )

    async def _safe_publish(self, topic: str, payload: str) -> None:
        try:
            await self.mqtt.publish(topic, payload, retain=False, qos=1)
        except Exception:
            logger.exception("Failed to publish error to %s", topic)
