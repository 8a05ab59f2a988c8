"""
Target discovery and resolution.

Public API:
    - Target, Credential, DiscoveryResponse: Target model
    - BroadcastProbe, ToolProbe: Discovery probes
    - TargetResolver, LayoutCredentials: Single-target selection
"""

from .base import Target, Credential, DiscoveryResponse, parse_device_address
from .discovery import BroadcastProbe, ToolProbe, DiscoveryProbe
from .resolver import TargetResolver, LayoutCredentials

__all__ = [
    "Target",
    "Credential",
    "DiscoveryResponse",
    "parse_device_address",
    "BroadcastProbe",
    "ToolProbe",
    "DiscoveryProbe",
    "TargetResolver",
    "LayoutCredentials",
]
