"""Tests for airthings2mqtt._errors — structured error publication.

Test Techniques Used:
    - Decision Table Testing: exception type → error_type string
    - Specification-based Testing: payload fields and topic layout
    - Clock Injection: deterministic timestamps
    - Exception Safety: publish failures are logged, never raised
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from airthings2mqtt._errors import (
    DEFAULT_ERROR_TYPE_MAP,
    ErrorPublisher,
    build_error_payload,
)
from airthings2mqtt._exceptions import (
    AirthingsError,
    AuthError,
    ForbiddenError,
    HttpError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
)
from airthings2mqtt._mqtt import MockMqttClient

NOW = datetime(2026, 2, 14, 12, 34, 56, tzinfo=UTC)


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def publisher(mock_mqtt: MockMqttClient) -> ErrorPublisher:
    return ErrorPublisher(mqtt=mock_mqtt, topic_prefix="airthings", clock=fixed_clock)


# ---------------------------------------------------------------------------
# build_error_payload
# ---------------------------------------------------------------------------


class TestBuildErrorPayload:
    """Technique: Decision Table Testing."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (AuthError("bad credentials", status=401), "auth_error"),
            (ForbiddenError("/devices"), "forbidden"),
            (RateLimitError("/devices"), "rate_limited"),
            (RequestTimeoutError("too slow"), "timeout"),
            (HttpError(500), "http_error"),
            (NetworkError("reset"), "network_error"),
        ],
    )
    def test_default_map(self, error: Exception, expected: str) -> None:
        payload = build_error_payload(error, error_type_map=DEFAULT_ERROR_TYPE_MAP)

        assert payload.error_type == expected

    def test_unmapped_falls_back_to_error(self) -> None:
        payload = build_error_payload(ValueError("boom"))

        assert payload.error_type == "error"
        assert payload.message == "boom"

    def test_exact_type_match_only(self) -> None:
        payload = build_error_payload(
            AuthError("nope"), error_type_map={AirthingsError: "airthings"}
        )

        assert payload.error_type == "error"

    def test_fields(self) -> None:
        payload = build_error_payload(
            HttpError(502, "Bad Gateway"),
            device="d1",
            details={"status": 502},
            clock=fixed_clock,
        )

        assert json.loads(payload.to_json()) == {
            "error_type": "error",
            "message": "API request failed with status 502: Bad Gateway",
            "device": "d1",
            "timestamp": "2026-02-14T12:34:56+00:00",
            "details": {"status": 502},
        }


# ---------------------------------------------------------------------------
# ErrorPublisher
# ---------------------------------------------------------------------------


class TestErrorPublisher:
    async def test_global_topic_only_without_device(
        self, publisher: ErrorPublisher, mock_mqtt: MockMqttClient
    ) -> None:
        await publisher.publish(NetworkError("dns failure"))

        assert [topic for topic, *_ in mock_mqtt.published] == ["airthings/error"]

    async def test_device_topic(
        self, publisher: ErrorPublisher, mock_mqtt: MockMqttClient
    ) -> None:
        await publisher.publish(HttpError(500), device="d1")

        assert [topic for topic, *_ in mock_mqtt.published] == [
            "airthings/error",
            "airthings/d1/error",
        ]
        payload = mock_mqtt.last_payload("airthings/d1/error")
        assert payload is not None
        data = json.loads(payload)
        assert data["error_type"] == "http_error"
        assert data["device"] == "d1"
        assert data["details"] == {"status": 500}

    async def test_not_retained(
        self, publisher: ErrorPublisher, mock_mqtt: MockMqttClient
    ) -> None:
        await publisher.publish(NetworkError("reset"))

        [(_, retain, qos)] = mock_mqtt.get_messages_for("airthings/error")
        assert retain is False
        assert qos == 1

    async def test_rate_limit_details(
        self, publisher: ErrorPublisher, mock_mqtt: MockMqttClient
    ) -> None:
        await publisher.publish(RateLimitError("/devices", retry_after=30.0))

        payload = mock_mqtt.last_payload("airthings/error")
        assert payload is not None
        assert json.loads(payload)["details"] == {"retry_after": 30.0}

    async def test_auth_status_detail(
        self, publisher: ErrorPublisher, mock_mqtt: MockMqttClient
    ) -> None:
        await publisher.publish(AuthError("rejected", status=401))

        payload = mock_mqtt.last_payload("airthings/error")
        assert payload is not None
        assert json.loads(payload)["details"] == {"status": 401}

    async def test_custom_map_entry(self, mock_mqtt: MockMqttClient) -> None:
        publisher = ErrorPublisher(mqtt=mock_mqtt, topic_prefix="airthings")
        publisher.error_type_map[KeyError] = "missing_key"

        await publisher.publish(KeyError("radon"))

        payload = mock_mqtt.last_payload("airthings/error")
        assert payload is not None
        assert json.loads(payload)["error_type"] == "missing_key"

    def test_default_map_is_copied(self, mock_mqtt: MockMqttClient) -> None:
        publisher = ErrorPublisher(mqtt=mock_mqtt, topic_prefix="airthings")
        publisher.error_type_map[KeyError] = "missing_key"

        assert KeyError not in DEFAULT_ERROR_TYPE_MAP

    async def test_publish_failure_is_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        class BrokenMqtt:
            async def publish(
                self, topic: str, payload: str, *, retain: bool = False, qos: int = 1
            ) -> None:
                raise ConnectionError("broker gone")

        publisher = ErrorPublisher(mqtt=BrokenMqtt(), topic_prefix="airthings")

        await publisher.publish(NetworkError("reset"), device="d1")

        assert "Failed to publish error to airthings/error" in caplog.text
        assert "Failed to publish error to airthings/d1/error" in caplog.text
