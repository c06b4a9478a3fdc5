"""Model-space (PDF points) to view-space (pixels) mapping.

No rounding happens here; callers round only when rasterizing.
"""

from __future__ import annotations

from dataclasses import dataclass

from labforms.model.field import FormField


def to_view(value: float, scale: float) -> float:
    return value * scale


def to_model(value: float, scale: float) -> float:
    if scale <= 0:
        raise ValueError(f"Scale must be positive, got {scale}")
    return value / scale


@dataclass(frozen=True, slots=True)
class ViewRect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def overlaps(self, other: "ViewRect") -> bool:
        return (
            self.left < other.right
            and self.right > other.left
            and self.top < other.bottom
            and self.bottom > other.top
        )

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> "ViewRect":
        left, right = sorted((x0, x1))
        top, bottom = sorted((y0, y1))
        return cls(left, top, right - left, bottom - top)


def field_rect(field: FormField, scale: float, origin: tuple[float, float] = (0.0, 0.0)) -> ViewRect:
    """Project a field onto its page, optionally offset by the page's view origin."""
    ox, oy = origin
    return ViewRect(
        left=ox + to_view(field.x, scale),
        top=oy + to_view(field.y, scale),
        width=to_view(field.width, scale),
        height=to_view(field.height, scale),
    )


@dataclass(frozen=True, slots=True)
class PageLayout:
    """View-space placement of every page of a document at one scale."""

    origins: tuple[tuple[float, float], ...]
    sizes: tuple[tuple[float, float], ...]
    scale: float

    @classmethod
    def stacked(
        cls,
        page_sizes: list[tuple[float, float]],
        scale: float,
        gap: float = 16.0,
        left: float = 0.0,
    ) -> "PageLayout":
        """Lay pages out top to bottom with a fixed pixel gap between them."""
        origins = []
        y = gap
        for _width, height in page_sizes:
            origins.append((left, y))
            y += to_view(height, scale) + gap
        return cls(origins=tuple(origins), sizes=tuple(page_sizes), scale=scale)

    @property
    def page_count(self) -> int:
        return len(self.origins)

    def origin(self, page: int) -> tuple[float, float] | None:
        if 1 <= page <= len(self.origins):
            return self.origins[page - 1]
        return None

    def page_rect(self, page: int) -> ViewRect:
        ox, oy = self.origins[page - 1]
        width, height = self.sizes[page - 1]
        return ViewRect(ox, oy, to_view(width, self.scale), to_view(height, self.scale))

    def page_at(self, x: float, y: float) -> int | None:
        for page in range(1, len(self.origins) + 1):
            if self.page_rect(page).contains(x, y):
                return page
        return None

    def to_page_point(self, page: int, x: float, y: float) -> tuple[float, float]:
        ox, oy = self.origins[page - 1]
        return to_model(x - ox, self.scale), to_model(y - oy, self.scale)

    def field_rect(self, field: FormField) -> ViewRect | None:
        origin = self.origin(field.page)
        if origin is None:
            return None
        return field_rect(field, self.scale, origin)

    @property
    def total_size(self) -> tuple[float, float]:
        if not self.origins:
            return 0.0, 0.0
        last = self.page_rect(len(self.origins))
        width = max(self.page_rect(page).right for page in range(1, len(self.origins) + 1))
        return width, last.bottom
