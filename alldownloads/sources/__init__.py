from alldownloads.sources.base import FetchCancelledError, FetchCapability, FetchContext, FetchError, VersionRecord
from alldownloads.sources.registry import (
    PRODUCT_DEFINITIONS,
    CapabilityNotFoundError,
    CapabilityRegistry,
    build_default_registry,
)

__all__ = [
    "FetchCapability",
    "FetchContext",
    "FetchError",
    "FetchCancelledError",
    "VersionRecord",
    "CapabilityRegistry",
    "CapabilityNotFoundError",
    "PRODUCT_DEFINITIONS",
    "build_default_registry",
]
