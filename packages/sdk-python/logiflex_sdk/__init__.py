"""LogiFlex Python SDK."""

__version__ = "0.1.0"

from logiflex_sdk.client import LogiFlexAPIError, LogiFlexClient

__all__ = ["LogiFlexClient", "LogiFlexAPIError"]
