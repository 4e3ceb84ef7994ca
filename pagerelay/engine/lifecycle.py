"""
Engine resource tracking for pagerelay.

Every browser context opened for a request must be closed on every exit path;
a leaked context keeps renderer processes alive for the lifetime of the relay.
ResourceTracker records the engine's live resources so that:
- the open-context count can be checked against a baseline (health, tests)
- shutdown can close whatever is still registered, contexts first
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceType(Enum):
    """Types of tracked engine resources."""

    BROWSER_CONTEXT = "browser_context"
    BROWSER = "browser"
    PLAYWRIGHT = "playwright"


# Close order during shutdown: contexts, then the browser, then the driver.
_CLEANUP_ORDER = {
    ResourceType.BROWSER_CONTEXT: 0,
    ResourceType.BROWSER: 1,
    ResourceType.PLAYWRIGHT: 2,
}


@dataclass
class ResourceInfo:
    """Information about a tracked resource.

    Attributes:
        resource_type: Type of the resource.
        resource: The actual Playwright object.
        request_id: Request that owns the resource (None for process-wide ones).
        created_at: Creation timestamp.
    """

    resource_type: ResourceType
    resource: Any
    request_id: str | None = None
    created_at: float = field(default_factory=time.time)

    @property
    def age_seconds(self) -> float:
        return time.time() - self.created_at


class ResourceTracker:
    """Tracks live engine resources and closes them on demand."""

    def __init__(self) -> None:
        self._resources: dict[str, ResourceInfo] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def resource_id(resource_type: ResourceType, resource: Any) -> str:
        return f"{resource_type.value}_{id(resource)}"

    async def register_resource(
        self,
        resource_type: ResourceType,
        resource: Any,
        request_id: str | None = None,
    ) -> str:
        """Register a resource.

        Args:
            resource_type: Type of the resource.
            resource: The Playwright object.
            request_id: Owning request, if any.

        Returns:
            Resource identifier.
        """
        rid = self.resource_id(resource_type, resource)
        async with self._lock:
            self._resources[rid] = ResourceInfo(
                resource_type=resource_type,
                resource=resource,
                request_id=request_id,
            )
        logger.debug(
            "Registered resource",
            resource_id=rid,
            resource_type=resource_type.value,
            request_id=request_id,
        )
        return rid

    async def unregister_resource(self, resource_id: str) -> bool:
        """Forget a resource without closing it.

        Returns:
            True if the resource was registered.
        """
        async with self._lock:
            info = self._resources.pop(resource_id, None)
        if info is None:
            return False
        logger.debug(
            "Unregistered resource",
            resource_id=resource_id,
            resource_type=info.resource_type.value,
            lifetime_ms=round(info.age_seconds * 1000, 1),
        )
        return True

    async def cleanup_all(self) -> dict[str, bool]:
        """Close every registered resource, contexts before browser before driver.

        Returns:
            Dict mapping resource_id to cleanup success status.
        """
        async with self._lock:
            items = sorted(
                self._resources.items(),
                key=lambda item: _CLEANUP_ORDER[item[1].resource_type],
            )
            self._resources.clear()

        if not items:
            return {}

        leaked = sum(1 for _, info in items if info.resource_type == ResourceType.BROWSER_CONTEXT)
        if leaked:
            logger.warning("Closing contexts still open at shutdown", count=leaked)

        results = {}
        for rid, info in items:
            results[rid] = await self._close(info)
        return results

    def get_resource_count(self, resource_type: ResourceType | None = None) -> int:
        """Count registered resources, optionally of a single type."""
        if resource_type is None:
            return len(self._resources)
        return sum(1 for info in self._resources.values() if info.resource_type == resource_type)

    async def _close(self, info: ResourceInfo) -> bool:
        try:
            if info.resource_type == ResourceType.PLAYWRIGHT:
                await info.resource.stop()
            else:
                await info.resource.close()
        except Exception as e:
            logger.warning(
                "Resource cleanup failed",
                resource_type=info.resource_type.value,
                error=str(e),
            )
            return False
        logger.debug("Cleaned up resource", resource_type=info.resource_type.value)
        return True
