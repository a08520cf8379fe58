"""Viewport transform and repaint scheduling.

    canvas = (client - offset) / scale
    client = canvas * scale + offset

Zoom keeps the canvas point under the pivot fixed:

    c          = (pivot - offset) / scale
    new_offset = pivot - c * new_scale
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from .geometry import Point, Rect, snap_value, snap_point


DEFAULT_MIN_SCALE        = 0.1
DEFAULT_MAX_SCALE        = 5.0
DEFAULT_ZOOM_SENSITIVITY = 0.001
DEFAULT_GRID_SIZE        = 20


@dataclass
class ViewState:
    scale: float = 1.0
    offset: Point = field(default_factory=Point)
    grid_size: float = DEFAULT_GRID_SIZE
    snap_to_grid: bool = False
    show_grid: bool = True
    min_scale: float = DEFAULT_MIN_SCALE
    max_scale: float = DEFAULT_MAX_SCALE

    def to_dict(self) -> dict:
        return {
            "scale": self.scale,
            "offset": self.offset.to_dict(),
            "gridSize": self.grid_size,
            "snapToGrid": self.snap_to_grid,
            "showGrid": self.show_grid,
        }

    @staticmethod
    def from_dict(d: dict) -> "ViewState":
        return ViewState(
            scale=float(d.get("scale", 1.0)),
            offset=Point.from_dict(d.get("offset", {})),
            grid_size=d.get("gridSize", DEFAULT_GRID_SIZE),
            snap_to_grid=d.get("snapToGrid", False),
            show_grid=d.get("showGrid", True),
        )


class Viewport:
    """World <-> client transform plus pan / zoom / fit."""

    def __init__(self, state: Optional[ViewState] = None,
                 zoom_sensitivity: float = DEFAULT_ZOOM_SENSITIVITY):
        self.state = state or ViewState()
        self.zoom_sensitivity = zoom_sensitivity
        self.surface_w = 0.0
        self.surface_h = 0.0
        self._listeners: list[Callable[[ViewState], None]] = []

    def on_view_changed(self, callback: Callable[[ViewState], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb(self.state)

    # -- Convenience --

    @property
    def scale(self) -> float:
        return self.state.scale

    @property
    def offset(self) -> Point:
        return self.state.offset

    def _clamp_scale(self, s: float) -> float:
        return max(self.state.min_scale, min(self.state.max_scale, s))

    # -- Transform --

    def client_to_canvas(self, p: Point) -> Point:
        s = self.state
        return Point((p.x - s.offset.x) / s.scale, (p.y - s.offset.y) / s.scale)

    def canvas_to_client(self, p: Point) -> Point:
        s = self.state
        return Point(p.x * s.scale + s.offset.x, p.y * s.scale + s.offset.y)

    def visible_rect(self) -> Rect:
        """World-space rect currently covered by the surface."""
        tl = self.client_to_canvas(Point(0, 0))
        return Rect(tl.x, tl.y, self.surface_w / self.scale, self.surface_h / self.scale)

    # -- Navigation --

    def set_surface_size(self, w: float, h: float) -> None:
        self.surface_w, self.surface_h = float(w), float(h)

    def pan(self, dx: float, dy: float) -> None:
        if dx == 0 and dy == 0:
            return
        self.state.offset = self.state.offset + Point(dx, dy)
        self._notify()

    def zoom(self, delta_y: float, pivot: Optional[Point] = None) -> bool:
        """Wheel zoom around a client-space pivot (surface centre if None).

        Returns False when clamping leaves the scale unchanged.
        """
        old = self.state.scale
        new = self._clamp_scale(old * (1.0 - delta_y * self.zoom_sensitivity))
        if new == old:
            return False
        if pivot is None:
            pivot = Point(self.surface_w / 2, self.surface_h / 2)
        c = self.client_to_canvas(pivot)
        self.state.scale = new
        self.state.offset = pivot - c.scaled(new)
        self._notify()
        return True

    def set_scale(self, scale: float, pivot: Optional[Point] = None) -> None:
        old = self.state.scale
        if pivot is None:
            pivot = Point(self.surface_w / 2, self.surface_h / 2)
        new = self._clamp_scale(scale)
        if new == old:
            return
        c = self.client_to_canvas(pivot)
        self.state.scale = new
        self.state.offset = pivot - c.scaled(new)
        self._notify()

    def reset_view(self) -> None:
        self.state.scale = 1.0
        self.state.offset = Point()
        self._notify()

    def zoom_to_fit(self, rect: Optional[Rect], padding: float = 50) -> bool:
        """Fit a world rect into the surface, centred.  No-op for degenerate input."""
        if rect is None or rect.width <= 0 or rect.height <= 0:
            return False
        avail_w = self.surface_w - padding * 2
        avail_h = self.surface_h - padding * 2
        if avail_w <= 0 or avail_h <= 0:
            return False
        scale = min(avail_w / rect.width, avail_h / rect.height, self.state.max_scale)
        scale = max(self.state.min_scale, scale)
        centre = rect.center
        self.state.scale = scale
        self.state.offset = Point(self.surface_w / 2 - centre.x * scale,
                                  self.surface_h / 2 - centre.y * scale)
        self._notify()
        return True

    # -- Grid --

    def set_grid(self, size: Optional[float] = None, snap: Optional[bool] = None,
                 show: Optional[bool] = None) -> None:
        s = self.state
        if size is not None and size > 0:
            s.grid_size = size
        if snap is not None:
            s.snap_to_grid = snap
        if show is not None:
            s.show_grid = show
        self._notify()

    @property
    def snap_grid(self) -> Optional[float]:
        """Grid size when snapping is on, else None."""
        return self.state.grid_size if self.state.snap_to_grid else None

    def snap(self, value: float) -> float:
        if not self.state.snap_to_grid:
            return value
        return snap_value(value, self.state.grid_size)

    def snap_point(self, p: Point) -> Point:
        if not self.state.snap_to_grid:
            return p
        return snap_point(p, self.state.grid_size)

    def snapshot(self) -> ViewState:
        return replace(self.state)

    def restore(self, state: ViewState) -> None:
        s = self.state
        s.scale = self._clamp_scale(state.scale)
        s.offset = state.offset
        s.grid_size = state.grid_size
        s.snap_to_grid = state.snap_to_grid
        s.show_grid = state.show_grid
        self._notify()


class RenderScheduler:
    """Coalesces repaint requests into at most one paint per frame.

    schedule – hook that arranges for flush() to be called later (the Qt
               canvas passes QWidget.update).
    """

    def __init__(self, viewport: Viewport, schedule: Callable[[], None]):
        self.viewport = viewport
        self._schedule = schedule
        self._dirty = False
        self._before_paint: list[Callable[[Any, ViewState], None]] = []

    @property
    def dirty(self) -> bool:
        return self._dirty

    def on_before_paint(self, callback: Callable[[Any, ViewState], None]) -> None:
        self._before_paint.append(callback)

    def request_render(self, *_args) -> None:
        """Accepts and ignores listener arguments so it can be wired directly."""
        if self._dirty:
            return
        self._dirty = True
        self._schedule()

    def flush(self, target: Any = None) -> None:
        self._dirty = False
        for cb in list(self._before_paint):
            cb(target, self.viewport.state)
