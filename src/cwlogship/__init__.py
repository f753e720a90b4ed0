"""
cwlogship - ship container logs to AWS CloudWatch Logs.

Records are tagged with a (log group, log stream) destination, batched per
destination under size, count and age limits, and delivered by a single
writer per destination that keeps the stream's sequencing cursor in order.
"""

from ._version import __version__
from .caching.cache import DeliveryContext
from .core.batcher import Batcher
from .core.delivery import DeliveryEngine, DeliveryOutcome
from .core.errors import (
    AmbiguousDestinationError,
    ConfigurationError,
    CursorMismatchError,
    DeliveryError,
    RegionUnresolvedError,
    RemoteTimeoutError,
    ResolutionExhaustedError,
    RetentionConfigError,
    ShipperError,
    TransportError,
)
from .core.models import (
    Batch,
    ContainerInfo,
    Destination,
    LogEvent,
    LogRecord,
    StreamInfo,
    TaggedMessage,
)
from .core.naming import (
    CachingResolver,
    DestinationResolver,
    EnvDestinationResolver,
    Resolution,
    StaticDestinationResolver,
)
from .core.pipeline import ShipperPipeline, build_pipeline
from .core.settings import Settings
from .metrics.metrics import MetricsCollector
from .remote.base import RemoteLogService

__all__ = [
    "__version__",
    # Pipeline
    "ShipperPipeline",
    "build_pipeline",
    "Batcher",
    "DeliveryEngine",
    "DeliveryOutcome",
    "DeliveryContext",
    "MetricsCollector",
    "Settings",
    # Data model
    "Batch",
    "ContainerInfo",
    "Destination",
    "LogEvent",
    "LogRecord",
    "StreamInfo",
    "TaggedMessage",
    # Naming
    "CachingResolver",
    "DestinationResolver",
    "EnvDestinationResolver",
    "Resolution",
    "StaticDestinationResolver",
    "RemoteLogService",
    # Errors
    "AmbiguousDestinationError",
    "ConfigurationError",
    "CursorMismatchError",
    "DeliveryError",
    "RegionUnresolvedError",
    "RemoteTimeoutError",
    "ResolutionExhaustedError",
    "RetentionConfigError",
    "ShipperError",
    "TransportError",
]
