"""
HTTP gateway to the UPS monitoring backend.
"""

from .client import (
    GatewayError,
    PayloadError,
    RequestFailure,
    TransportFailure,
    UPSApiClient,
    build_params,
)

__all__ = [
    "GatewayError", "PayloadError", "RequestFailure", "TransportFailure",
    "UPSApiClient", "build_params",
]
