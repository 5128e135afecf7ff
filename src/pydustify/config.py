"""Configuration for pydustify."""

from __future__ import annotations

import dataclasses
import math
import os
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydustify.exceptions import DustifyConfigError
from pydustify.schemas import SCHEMAS, EntityKind

DEFAULT_RECONNECT_DELAY = 5.0


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type[int] | type[float]) -> int | float | None:
    value = env.get(key)
    if value is None:
        return None
    try:
        return cast(value)
    except ValueError as exc:
        raise DustifyConfigError(f"{key} must be a number, got {value!r}") from exc


def _is_number(value: Any, *, integral: bool = False) -> bool:
    if isinstance(value, bool):
        return False
    if integral:
        return isinstance(value, int)
    return isinstance(value, (int, float)) and math.isfinite(value)


def validate_topic(topic: str) -> str:
    """Return *topic* stripped, or raise if it cannot be subscribed to.

    Wildcards are allowed where MQTT allows them in a subscription
    filter: ``+`` as a whole level, ``#`` as the whole last level.
    """
    if not isinstance(topic, str) or not topic.strip():
        raise DustifyConfigError("Topic cannot be empty or whitespace")
    topic = topic.strip()
    if "\x00" in topic:
        raise DustifyConfigError("Topic cannot contain NUL characters")
    if len(topic.encode("utf-8")) > 65535:
        raise DustifyConfigError("Topic is longer than 65535 bytes")
    levels = topic.split("/")
    for index, level in enumerate(levels):
        if "#" in level and (level != "#" or index != len(levels) - 1):
            raise DustifyConfigError(f"'#' must be the whole last level of the topic: {topic!r}")
        if "+" in level and level != "+":
            raise DustifyConfigError(f"'+' must occupy a whole topic level: {topic!r}")
    return topic


def _default_topics() -> Mapping[EntityKind, str]:
    return MappingProxyType({kind: schema.default_topic for kind, schema in SCHEMAS.items()})


@dataclasses.dataclass(frozen=True)
class BrokerConfig:
    """MQTT broker connection parameters.

    Parameters
    ----------
    host : str
        Broker hostname or address.
    port : int
        Broker TCP port, 1-65535.
    keepalive : int
        MQTT keepalive in seconds.
    qos : int
        QoS used for topic subscriptions (0, 1 or 2).
    connect_timeout : float
        Seconds to wait for CONNACK/SUBACK before treating the attempt as failed.
    reconnect_delay : float
        Constant backoff in seconds between a disconnect and the next
        connection attempt. Retries are unbounded.
    client_id_prefix : str
        Prefix of the per-channel MQTT client id.
    username, password : str or None
        Optional broker credentials.
    tls : bool
        Wrap the connection in TLS using the system trust store.
    """

    host: str = "test.mosquitto.org"
    port: int = 1883
    keepalive: int = 60
    qos: int = 1
    connect_timeout: float = 10.0
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    client_id_prefix: str = "NeuroDustify"
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    tls: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise DustifyConfigError("Broker address cannot be empty or whitespace")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 < self.port <= 65535:
            raise DustifyConfigError(f"Port must be a valid TCP/IP port number, got {self.port!r}")
        if not _is_number(self.qos, integral=True) or self.qos not in (0, 1, 2):
            raise DustifyConfigError(f"QoS must be 0, 1 or 2, got {self.qos!r}")
        if not _is_number(self.keepalive, integral=True) or self.keepalive <= 0:
            raise DustifyConfigError(f"keepalive must be a positive integer, got {self.keepalive!r}")
        if not _is_number(self.connect_timeout) or self.connect_timeout <= 0:
            raise DustifyConfigError(f"connect_timeout must be a positive number, got {self.connect_timeout!r}")
        if not _is_number(self.reconnect_delay) or self.reconnect_delay < 0:
            raise DustifyConfigError(f"reconnect_delay must be a non-negative number, got {self.reconnect_delay!r}")
        if not isinstance(self.client_id_prefix, str) or not self.client_id_prefix.strip():
            raise DustifyConfigError("client_id_prefix cannot be empty")


@dataclasses.dataclass(frozen=True)
class DustifyConfig:
    """Top-level configuration: one broker, one topic per entity kind.

    Parameters
    ----------
    broker : BrokerConfig
        Shared broker parameters.
    topics : Mapping[EntityKind, str]
        Topic per entity kind. Kinds not present fall back to the default
        ``suburb/model/igention/<kind>s`` topic.
    enabled_kinds : tuple of EntityKind
        Kinds to run a channel for.
    max_records : int or None
        Per-store retention window. ``None`` keeps every record.
    """

    broker: BrokerConfig = dataclasses.field(default_factory=BrokerConfig)
    topics: Mapping[EntityKind, str] = dataclasses.field(default_factory=_default_topics)
    enabled_kinds: tuple[EntityKind, ...] = tuple(EntityKind)
    max_records: int | None = None

    def __post_init__(self) -> None:
        for kind, topic in self.topics.items():
            validate_topic(topic)
            if kind not in SCHEMAS:
                raise DustifyConfigError(f"Unknown entity kind in topics: {kind!r}")
        if not self.enabled_kinds:
            raise DustifyConfigError("At least one entity kind must be enabled")
        if self.max_records is not None and (not _is_number(self.max_records, integral=True) or self.max_records <= 0):
            raise DustifyConfigError(f"max_records must be a positive integer when set, got {self.max_records!r}")

    def topic_for(self, kind: EntityKind) -> str:
        topic = self.topics.get(kind)
        if topic is None:
            return SCHEMAS[kind].default_topic
        return validate_topic(topic)

    @classmethod
    def from_env(cls, **overrides: Any) -> DustifyConfig:
        """Create configuration from environment variables.

        Reads ``DUSTIFY_BROKER_HOST``, ``DUSTIFY_BROKER_PORT``,
        ``DUSTIFY_MQTT_KEEPALIVE``, ``DUSTIFY_MQTT_QOS``,
        ``DUSTIFY_RECONNECT_DELAY``, ``DUSTIFY_MQTT_USERNAME``,
        ``DUSTIFY_MQTT_PASSWORD``, ``DUSTIFY_MQTT_TLS``,
        ``DUSTIFY_<KIND>_TOPIC`` (e.g. ``DUSTIFY_BIN_TOPIC``),
        ``DUSTIFY_ENABLED_KINDS`` (comma separated) and
        ``DUSTIFY_MAX_RECORDS``. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        broker_kwargs: dict[str, Any] = {}
        _ENV_BROKER_MAP = {
            "DUSTIFY_BROKER_HOST": "host",
            "DUSTIFY_MQTT_USERNAME": "username",
            "DUSTIFY_MQTT_PASSWORD": "password",
            "DUSTIFY_CLIENT_ID_PREFIX": "client_id_prefix",
        }
        for env_key, field_name in _ENV_BROKER_MAP.items():
            val = env.get(env_key)
            if val is not None:
                broker_kwargs[field_name] = val

        _ENV_BROKER_NUMBERS: dict[str, tuple[str, type[int] | type[float]]] = {
            "DUSTIFY_BROKER_PORT": ("port", int),
            "DUSTIFY_MQTT_KEEPALIVE": ("keepalive", int),
            "DUSTIFY_MQTT_QOS": ("qos", int),
            "DUSTIFY_CONNECT_TIMEOUT": ("connect_timeout", float),
            "DUSTIFY_RECONNECT_DELAY": ("reconnect_delay", float),
        }
        for env_key, (field_name, cast) in _ENV_BROKER_NUMBERS.items():
            number = _env_number(env, env_key, cast)
            if number is not None:
                broker_kwargs[field_name] = number

        broker_kwargs["tls"] = _env_bool(env.get("DUSTIFY_MQTT_TLS"), False)

        # Allow overriding broker fields via a nested dict
        broker_overrides = overrides.pop("broker", None)
        if isinstance(broker_overrides, dict):
            broker_kwargs.update(broker_overrides)
        elif isinstance(broker_overrides, BrokerConfig):
            broker_kwargs = dataclasses.asdict(broker_overrides)

        config_kwargs: dict[str, Any] = {"broker": BrokerConfig(**broker_kwargs)}

        topics = dict(_default_topics())
        for kind in EntityKind:
            val = env.get(f"DUSTIFY_{kind.name}_TOPIC")
            if val is not None:
                topics[kind] = val
        config_kwargs["topics"] = topics

        kinds_env = env.get("DUSTIFY_ENABLED_KINDS")
        if kinds_env is not None and "enabled_kinds" not in overrides:
            try:
                config_kwargs["enabled_kinds"] = tuple(
                    EntityKind(part.strip().lower()) for part in kinds_env.split(",") if part.strip()
                )
            except ValueError as exc:
                raise DustifyConfigError(f"DUSTIFY_ENABLED_KINDS contains an unknown kind: {kinds_env!r}") from exc

        max_records = _env_number(env, "DUSTIFY_MAX_RECORDS", int)
        if max_records is not None and "max_records" not in overrides:
            config_kwargs["max_records"] = max_records

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
