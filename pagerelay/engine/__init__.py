"""
Browser engine: shared Chromium instance, per-request contexts and header capture.
"""

from pagerelay.engine.impersonation import capture_headers, reusable_headers
from pagerelay.engine.lifecycle import ResourceTracker, ResourceType
from pagerelay.engine.pool import EnginePool

__all__ = [
    "EnginePool",
    "ResourceTracker",
    "ResourceType",
    "capture_headers",
    "reusable_headers",
]
