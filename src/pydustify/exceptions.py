"""Custom exception hierarchy for pydustify."""

from __future__ import annotations


class DustifyError(Exception):
    """Base exception for all pydustify errors."""


class DustifyConfigError(DustifyError):
    """Invalid or missing configuration.

    Raised synchronously at construction time; a channel is never
    created from an invalid broker address, port or topic.
    """


class BrokerError(DustifyError):
    """Broker-level failure (connect refused, timeout, subscribe rejected).

    These never escape the ingestion channel; they drive its reconnect
    state machine instead.
    """

    def __init__(self, message: str, *, host: str = "", port: int | None = None) -> None:
        self.host = host
        self.port = port
        super().__init__(message)


class BrokerConnectionError(BrokerError):
    """Connection could not be established or was lost mid-handshake."""


class BrokerSubscriptionError(BrokerError):
    """Broker rejected (or never acknowledged) a topic subscription."""

    def __init__(self, message: str, *, topic: str = "", host: str = "", port: int | None = None) -> None:
        self.topic = topic
        super().__init__(message, host=host, port=port)


class DecodeError(DustifyError):
    """A single payload could not be turned into a record.

    Decode errors are message-local: the channel logs them together with
    the raw payload and keeps consuming.
    """


class MalformedPayloadError(DecodeError):
    """Payload is not UTF-8 text holding one JSON object."""


class MissingRequiredFieldError(DecodeError):
    """A required wire field resolved to no value."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidFieldError(DecodeError):
    """A wire field is present but its value cannot be coerced."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for field {field}: {reason}")
