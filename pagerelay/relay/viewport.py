"""Screenshot viewport resolution."""

import math
from dataclasses import dataclass

from pagerelay.utils.config import ScreenshotConfig, get_settings
from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Viewport:
    """Viewport size in CSS pixels (both sides > 0)."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Viewport sides must be positive: {self.width}x{self.height}")

    def scaled(self, factor: float) -> "Viewport":
        width, height = self.width * factor, self.height * factor
        if not (math.isfinite(width) and math.isfinite(height)):
            raise ValueError(f"Scale factor out of range: {factor}")
        return Viewport(max(1, round(width)), max(1, round(height)))

    def to_dict(self) -> dict[str, int]:
        """Playwright `viewport` option format."""
        return {"width": self.width, "height": self.height}


def _positive_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def _positive_float(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if math.isfinite(value) and value > 0 else None


def resolve_viewport(
    *,
    width: str | None = None,
    height: str | None = None,
    preset: str | None = None,
    size: str | None = None,
    config: ScreenshotConfig | None = None,
) -> Viewport:
    """Resolve the screenshot viewport from raw query values.

    Precedence:
    1. width + height, both positive integers
    2. named preset, scaled by size when size is a positive number
    3. configured default (1280x800)

    Malformed values fall through to the next rule instead of failing the request.
    """
    config = config or get_settings().screenshot

    explicit_w, explicit_h = _positive_int(width), _positive_int(height)
    if explicit_w is not None and explicit_h is not None:
        return Viewport(explicit_w, explicit_h)

    if preset:
        dims = config.presets.get(preset.strip().lower())
        if dims is not None:
            viewport = Viewport(*dims)
            scale = _positive_float(size)
            if scale is None:
                return viewport
            try:
                return viewport.scaled(scale)
            except ValueError:
                logger.warning("Viewport scale out of range, using preset", preset=preset, size=size)
                return viewport
        logger.warning("Unknown viewport preset, using default", preset=preset)

    return Viewport(config.default_width, config.default_height)
