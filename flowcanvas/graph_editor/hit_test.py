"""Geometric hit-testing for the diagram canvas.

Pure function of (world point, scale, model, selection).  Screen-space
tolerances are divided by scale so they feel constant on screen.

Priority, first match wins:
  1. resize handle of the single selected node / note
  2. endpoint grip of a selected connection
  3. port (nodes topmost first, hidden ports skipped)
  4. endpoint grip, then body, of any connection
  5. sticky note, then node body (topmost first)
  6. group header strip
  7. background

Selected-connection grips sit above ports because a grip is drawn on top of
the port it is attached to and would otherwise never be reachable.  Stages 1
and 2 are skipped while a connection is being dragged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .geometry import (
    Point, Rect, resize_handle_points, wire_bounds, distance_to_wire, chord_distance_sq,
    NODE_HEADER_H, PORT_HIT_RADIUS, RECONNECT_HANDLE_RADIUS,
    CONNECTION_HIT_THRESHOLD, RESIZE_HANDLE_SIZE,
)
from .graph_model import GraphModel, Connection, port_position
from .selection import SelectionSet


class HitKind(Enum):
    RESIZE_HANDLE = "resize_handle"
    PORT          = "port"
    CONNECTION    = "connection"
    NOTE          = "note"
    NODE          = "node"
    GROUP         = "group"
    BACKGROUND    = "background"


REGION_HEADER       = "header"
REGION_BODY         = "body"
REGION_SOURCE_GRIP  = "source_grip"
REGION_TARGET_GRIP  = "target_grip"


@dataclass(frozen=True)
class Hit:
    kind: HitKind = HitKind.BACKGROUND
    entity_id: Optional[str] = None     # node / note / connection / group id
    region: Optional[str] = None
    port_id: Optional[str] = None
    handle: Optional[str] = None        # resize handle name

    @property
    def is_background(self) -> bool:
        return self.kind is HitKind.BACKGROUND


BACKGROUND = Hit()


def connection_endpoints(model: GraphModel, conn: Connection) -> Optional[tuple[Point, Point]]:
    """World positions of both ends, or None if either end is missing or hidden."""
    src = model.get_port(conn.source_port_id)
    dst = model.get_port(conn.target_port_id)
    if src is None or dst is None:
        return None
    src_node, dst_node = model.port_node(src), model.port_node(dst)
    if src_node is None or dst_node is None:
        return None
    p0, p1 = port_position(src_node, src), port_position(dst_node, dst)
    if p0 is None or p1 is None:
        return None
    return p0, p1


def _grip_hit(pt: Point, conn: Connection, ends: tuple[Point, Point], r: float) -> Optional[Hit]:
    r_sq = r * r
    if pt.dist_sq(ends[0]) < r_sq:
        return Hit(HitKind.CONNECTION, conn.id, REGION_SOURCE_GRIP)
    if pt.dist_sq(ends[1]) < r_sq:
        return Hit(HitKind.CONNECTION, conn.id, REGION_TARGET_GRIP)
    return None


def point_near_wire(pt: Point, p0: Point, p1: Point, threshold: float) -> bool:
    """Cheap bounding-box reject, then the chord, then the routed curve."""
    box = wire_bounds(p0, p1).adjusted(threshold)
    if not box.contains(pt):
        return False
    if chord_distance_sq(pt, p0, p1) < threshold * threshold:
        return True
    return distance_to_wire(pt, p0, p1) < threshold


def hit_test(pt: Point, scale: float, model: GraphModel,
             selection: Optional[SelectionSet] = None, *,
             connecting: bool = False) -> Hit:
    """Resolve what lies under pt.

    connecting=True skips the resize-handle and selected-grip stages, so a
    connection dragged over a port always resolves to the port.
    """
    port_r = PORT_HIT_RADIUS / scale
    grip_r = RECONNECT_HANDLE_RADIUS / scale
    wire_t = CONNECTION_HIT_THRESHOLD / scale
    handle_r = RESIZE_HANDLE_SIZE / scale

    # 1. resize handles
    selected_id = selection.single() if selection is not None else None
    if selected_id is not None and not connecting:
        item = model.get_node(selected_id) or model.get_note(selected_id)
        if item is not None:
            for name, hp in resize_handle_points(item.rect):
                if abs(pt.x - hp.x) <= handle_r and abs(pt.y - hp.y) <= handle_r:
                    return Hit(HitKind.RESIZE_HANDLE, item.id, handle=name)

    # 2. grips of selected connections
    if not connecting and selection is not None:
        for cid in selection:
            conn = model.get_connection(cid)
            ends = connection_endpoints(model, conn) if conn is not None else None
            if ends is not None:
                hit = _grip_hit(pt, conn, ends, grip_r)
                if hit is not None:
                    return hit

    # 3. ports
    port_r_sq = port_r * port_r
    for node in reversed(model.nodes):
        for port in node.all_ports():
            pos = port_position(node, port)
            if pos is not None and pt.dist_sq(pos) < port_r_sq:
                return Hit(HitKind.PORT, node.id, port_id=port.id)

    # 4. connections.  A grip sits on its port centre and PORT_HIT_RADIUS is
    # larger than RECONNECT_HANDLE_RADIUS, so unselected grips only win here
    # when the port radius is configured smaller.
    for conn in model.connections:
        ends = connection_endpoints(model, conn)
        if ends is None:
            continue
        hit = _grip_hit(pt, conn, ends, grip_r)
        if hit is not None:
            return hit
        if point_near_wire(pt, ends[0], ends[1], wire_t):
            return Hit(HitKind.CONNECTION, conn.id, REGION_BODY)

    # 5. item bodies
    for note in reversed(model.notes):
        if note.rect.contains(pt):
            return Hit(HitKind.NOTE, note.id, REGION_BODY)
    for node in reversed(model.nodes):
        if node.rect.contains(pt):
            region = REGION_HEADER if pt.y < node.position.y + NODE_HEADER_H else REGION_BODY
            return Hit(HitKind.NODE, node.id, region)

    # 6. group headers
    for group in reversed(model.groups):
        if group.header_rect.contains(pt):
            return Hit(HitKind.GROUP, group.id, REGION_HEADER)

    return BACKGROUND


def items_in_rect(model: GraphModel, rect: Rect) -> list[str]:
    """Ids of nodes and notes overlapping rect (strict overlap), nodes first."""
    ids = [n.id for n in model.nodes if n.rect.intersects(rect)]
    ids += [n.id for n in model.notes if n.rect.intersects(rect)]
    return ids
