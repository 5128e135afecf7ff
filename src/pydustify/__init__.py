"""pydustify - MQTT ingestion and latest-state queries for smart-bin telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydustify")
except PackageNotFoundError:
    __version__ = "0+local"
from pydustify.codec import decode_payload
from pydustify.config import BrokerConfig, DustifyConfig
from pydustify.exceptions import (
    BrokerConnectionError,
    BrokerError,
    BrokerSubscriptionError,
    DecodeError,
    DustifyConfigError,
    DustifyError,
    InvalidFieldError,
    MalformedPayloadError,
    MissingRequiredFieldError,
)
from pydustify.hub import TelemetryHub
from pydustify.ingestion import ChannelState, ChannelStats, IngestionChannel
from pydustify.models import (
    AssociatedHouse,
    BinRecord,
    DrivewayRecord,
    HouseRecord,
    Location,
    StreetRecord,
    SuburbRecord,
)
from pydustify.query import RecordQuery
from pydustify.schemas import SCHEMAS, EntityKind, LatestPolicy, RecordSchema
from pydustify.state.store import MessageStore
from pydustify.supervisor import ChannelSupervisor

__all__ = [
    "__version__",
    "AssociatedHouse",
    "BinRecord",
    "BrokerConfig",
    "BrokerConnectionError",
    "BrokerError",
    "BrokerSubscriptionError",
    "ChannelState",
    "ChannelStats",
    "ChannelSupervisor",
    "DecodeError",
    "DrivewayRecord",
    "DustifyConfig",
    "DustifyConfigError",
    "DustifyError",
    "EntityKind",
    "HouseRecord",
    "IngestionChannel",
    "InvalidFieldError",
    "LatestPolicy",
    "Location",
    "MalformedPayloadError",
    "MessageStore",
    "MissingRequiredFieldError",
    "RecordQuery",
    "RecordSchema",
    "SCHEMAS",
    "StreetRecord",
    "SuburbRecord",
    "TelemetryHub",
    "decode_payload",
]
