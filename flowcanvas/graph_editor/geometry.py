"""Canvas geometry primitives and layout constants.

Pure Python, no Qt dependency.  Everything that decides where something sits
on the canvas lives here so the hit-tester and the painter never disagree.

Coordinate spaces:
  world  – canvas coordinates stored on nodes / notes / groups
  client – pixels relative to the canvas widget; Viewport converts between them

Wires are routed as the same horizontal-tangent cubic used by the canvas
painter:

    p0 ── (p0.x + dx, p0.y) ── (p1.x - dx, p1.y) ── p1
    dx = |p1.x - p0.x| * 0.5 + 40
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np


# ---------------------------------------------------------------------------
# Layout constants (world units unless noted)
# ---------------------------------------------------------------------------

NODE_HEADER_H       = 40
PORT_SPACING        = 24      # vertical distance between port rows
PORT_R              = 5       # drawn port circle radius
DEFAULT_NODE_W      = 200
DEFAULT_NODE_H      = 100
MIN_NODE_W          = 80
MIN_NODE_H          = 40

DEFAULT_NOTE_W      = 200
DEFAULT_NOTE_H      = 150
MIN_NOTE_W          = 50
MIN_NOTE_H          = 50

GROUP_HEADER_H      = 30
GROUP_PADDING       = 20
GROUP_MIN_W         = 150
GROUP_MIN_H         = 100

# Screen-space tolerances (pixels); divide by scale before comparing in world space
PORT_HIT_RADIUS           = 14
RECONNECT_HANDLE_RADIUS   = 10
CONNECTION_HIT_THRESHOLD  = 5
RESIZE_HANDLE_SIZE        = 8

WIRE_MIN_DX         = 40
WIRE_SAMPLES        = 30

RESIZE_HANDLES = ("nw", "n", "ne", "w", "e", "sw", "s", "se")


# ---------------------------------------------------------------------------
# Point / Rect
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Point:
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.x - other.x, self.y - other.y)

    def scaled(self, k: float) -> "Point":
        return Point(self.x * k, self.y * k)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def dist_sq(self, other: "Point") -> float:
        return (self.x - other.x) ** 2 + (self.y - other.y) ** 2

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @staticmethod
    def from_dict(d: dict) -> "Point":
        return Point(float(d.get("x", 0.0)), float(d.get("y", 0.0)))


@dataclass(frozen=True)
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def top_left(self) -> Point:
        return Point(self.x, self.y)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, p: Point) -> bool:
        """Inclusive on every edge."""
        return self.x <= p.x <= self.right and self.y <= p.y <= self.bottom

    def intersects(self, other: "Rect") -> bool:
        """Strict axis-aligned overlap (touching edges do not count)."""
        return (self.x < other.right and self.right > other.x and
                self.y < other.bottom and self.bottom > other.y)

    def adjusted(self, pad: float) -> "Rect":
        return Rect(self.x - pad, self.y - pad,
                    self.width + pad * 2, self.height + pad * 2)

    @staticmethod
    def from_points(a: Point, b: Point) -> "Rect":
        """Normalised rect spanning two corners (never negative size)."""
        return Rect(min(a.x, b.x), min(a.y, b.y), abs(a.x - b.x), abs(a.y - b.y))

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def bounding_rect(rects: Iterable[Rect]) -> Optional[Rect]:
    """Union of rects, or None for an empty input."""
    rects = list(rects)
    if not rects:
        return None
    arr = np.array([[r.x, r.y, r.right, r.bottom] for r in rects], dtype=float)
    x0, y0 = arr[:, 0].min(), arr[:, 1].min()
    x1, y1 = arr[:, 2].max(), arr[:, 3].max()
    return Rect(float(x0), float(y0), float(x1 - x0), float(y1 - y0))


# ---------------------------------------------------------------------------
# Grid snapping
# ---------------------------------------------------------------------------

def snap_value(v: float, grid: float) -> float:
    """Round to the nearest grid line (halves round up, as on screen)."""
    if grid <= 0:
        return v
    return math.floor(v / grid + 0.5) * grid


def snap_up(v: float, grid: float) -> float:
    if grid <= 0:
        return v
    return math.ceil(v / grid) * grid


def snap_point(p: Point, grid: float) -> Point:
    return Point(snap_value(p.x, grid), snap_value(p.y, grid))


# ---------------------------------------------------------------------------
# Resize handles
# ---------------------------------------------------------------------------

def resize_handle_points(rect: Rect) -> list[tuple[str, Point]]:
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    return [
        ("nw", Point(x, y)),         ("n", Point(x + w / 2, y)),     ("ne", Point(x + w, y)),
        ("w",  Point(x, y + h / 2)),                                  ("e",  Point(x + w, y + h / 2)),
        ("sw", Point(x, y + h)),     ("s", Point(x + w / 2, y + h)), ("se", Point(x + w, y + h)),
    ]


def resized_rect(original: Rect, handle: str, dx: float, dy: float,
                 min_w: float, min_h: float) -> Rect:
    """Apply a handle drag of (dx, dy) to `original`.

    East/south handles move the far edge; west/north handles move the near
    edge and keep the opposite edge anchored, so a clamp on those sides
    pushes the origin back instead of growing past the anchor.
    """
    x, y = original.x, original.y
    w, h = original.width, original.height
    if "e" in handle:
        w = max(min_w, original.width + dx)
    if "w" in handle:
        w = max(min_w, original.width - dx)
        x = original.right - w
    if "s" in handle:
        h = max(min_h, original.height + dy)
    if "n" in handle:
        h = max(min_h, original.height - dy)
        y = original.bottom - h
    return Rect(x, y, w, h)


def cursor_for_handle(handle: str) -> str:
    if handle in ("nw", "se"):
        return "nwse-resize"
    if handle in ("ne", "sw"):
        return "nesw-resize"
    if handle in ("n", "s"):
        return "ns-resize"
    if handle in ("w", "e"):
        return "ew-resize"
    return "default"


# ---------------------------------------------------------------------------
# Wire routing
# ---------------------------------------------------------------------------

def wire_controls(p0: Point, p1: Point) -> tuple[Point, Point, Point, Point]:
    """Control polygon of the wire from p0 (output side) to p1 (input side)."""
    dx = abs(p1.x - p0.x) * 0.5 + WIRE_MIN_DX
    return p0, Point(p0.x + dx, p0.y), Point(p1.x - dx, p1.y), p1


def wire_bounds(p0: Point, p1: Point) -> Rect:
    """Axis-aligned box containing the whole wire (its control hull)."""
    xs = [c.x for c in wire_controls(p0, p1)]
    ys = [c.y for c in wire_controls(p0, p1)]
    return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def sample_wire(p0: Point, p1: Point, samples: int = WIRE_SAMPLES) -> np.ndarray:
    """(samples + 1, 2) array of points along the wire."""
    c0, c1, c2, c3 = wire_controls(p0, p1)
    t = np.linspace(0.0, 1.0, samples + 1)[:, None]
    mt = 1.0 - t
    ctrl = np.array([[c0.x, c0.y], [c1.x, c1.y], [c2.x, c2.y], [c3.x, c3.y]])
    return (mt ** 3 * ctrl[0] + 3 * mt ** 2 * t * ctrl[1] +
            3 * mt * t ** 2 * ctrl[2] + t ** 3 * ctrl[3])


def distance_to_wire(pt: Point, p0: Point, p1: Point,
                     samples: int = WIRE_SAMPLES) -> float:
    """Approximate minimum distance from pt to the routed wire."""
    pts = sample_wire(p0, p1, samples)
    d = np.hypot(pts[:, 0] - pt.x, pts[:, 1] - pt.y)
    return float(d.min())


def chord_distance_sq(pt: Point, p0: Point, p1: Point) -> float:
    """Squared distance from pt to the closest point on segment p0-p1."""
    len_sq = p0.dist_sq(p1)
    if len_sq == 0:
        return pt.dist_sq(p0)
    t = ((pt.x - p0.x) * (p1.x - p0.x) + (pt.y - p0.y) * (p1.y - p0.y)) / len_sq
    t = max(0.0, min(1.0, t))
    proj = Point(p0.x + t * (p1.x - p0.x), p0.y + t * (p1.y - p0.y))
    return pt.dist_sq(proj)
