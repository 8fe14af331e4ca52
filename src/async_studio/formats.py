from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FormatOption:
    id: str
    name: str
    ratio: str
    dimensions: str
    platform: str
    description: str
    best_for: str

    def parameters(self) -> dict[str, str]:
        """Fields merged into the structured prompt at generation time."""
        return {
            "aspectRatio": self.ratio,
            "format": self.name,
            "dimensions": self.dimensions,
            "platform": self.platform,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ratio": self.ratio,
            "dimensions": self.dimensions,
            "platform": self.platform,
            "description": self.description,
            "best_for": self.best_for,
        }


FORMAT_OPTIONS: tuple[FormatOption, ...] = (
    FormatOption(
        id="square",
        name="Square (1:1)",
        ratio="1:1",
        dimensions="1080x1080px",
        platform="Instagram Post",
        description="Perfect for Instagram feed posts and Facebook",
        best_for="Product showcases, quotes, announcements - works great on all feeds",
    ),
    FormatOption(
        id="landscape",
        name="Landscape (16:9)",
        ratio="16:9",
        dimensions="1920x1080px",
        platform="YouTube Thumbnail",
        description="Ideal for YouTube, LinkedIn articles, and presentations",
        best_for="Video thumbnails, blog headers, wide promotional banners",
    ),
    FormatOption(
        id="portrait",
        name="Portrait (4:5)",
        ratio="4:5",
        dimensions="1080x1350px",
        platform="Instagram Story",
        description="Optimized for Instagram and Facebook stories",
        best_for="Story ads, vertical videos, mobile-first content",
    ),
    FormatOption(
        id="wide",
        name="Wide (21:9)",
        ratio="21:9",
        dimensions="2560x1080px",
        platform="Banner/Header",
        description="Best for website headers and cover photos",
        best_for="Website banners, Twitter headers, LinkedIn cover images",
    ),
)

DEFAULT_FORMAT_ID = "square"


def get_format(format_id: str) -> FormatOption | None:
    return next((f for f in FORMAT_OPTIONS if f.id == format_id), None)


def find_by_ratio(ratio: Any) -> FormatOption | None:
    if not isinstance(ratio, str):
        return None
    return next((f for f in FORMAT_OPTIONS if f.ratio == ratio), None)
