"""Pointer interaction state machine for the diagram canvas.

Turns plain pointer / wheel events (client coordinates, no Qt types) into
graph mutations.  Every interaction starts and ends in IDLE:

  IDLE ──down──> PANNING | DRAGGING_ITEMS | RESIZING_ITEM | BOX_SELECTING
               | DRAGGING_CONNECTION | RECONNECTING_CONNECTION
  any  ──up / leave / cancel──> IDLE

Moves and resizes are applied live on every pointer-move; pointer-up only
reports completion.  Connection drags mutate nothing until pointer-up, and
only when the release lands on the port flagged compatible by the last move.
A failed reconnection re-creates the original connection with its id and
label.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .geometry import Point, Rect, MIN_NOTE_W, resized_rect, cursor_for_handle
from .graph_model import (
    GraphModel, Connection, Port, EntityKind,
    port_position, min_node_width, min_node_height, min_note_height, clone_connection,
)
from .hit_test import (
    Hit, HitKind, hit_test, items_in_rect, REGION_SOURCE_GRIP, REGION_TARGET_GRIP,
)
from .selection import SelectionSet
from .viewport import Viewport


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class Mode(Enum):
    IDLE                    = "idle"
    PANNING                 = "panning"
    DRAGGING_ITEMS          = "dragging_items"
    RESIZING_ITEM           = "resizing_item"
    BOX_SELECTING           = "box_selecting"
    DRAGGING_CONNECTION     = "dragging_connection"
    RECONNECTING_CONNECTION = "reconnecting_connection"


class Button(Enum):
    PRIMARY   = 0
    MIDDLE    = 1
    SECONDARY = 2


@dataclass(frozen=True)
class Modifiers:
    shift: bool = False
    ctrl: bool = False
    meta: bool = False
    alt: bool = False

    @property
    def toggle(self) -> bool:
        return self.ctrl or self.meta

    @property
    def additive(self) -> bool:
        return self.shift or self.ctrl or self.meta


NO_MODIFIERS = Modifiers()


@dataclass(frozen=True)
class PointerEvent:
    client: Point
    button: Button = Button.PRIMARY
    modifiers: Modifiers = NO_MODIFIERS


@dataclass(frozen=True)
class WheelEvent:
    delta_y: float
    client: Point


# ---------------------------------------------------------------------------
# Captured interaction state
# ---------------------------------------------------------------------------

@dataclass
class ReconnectInfo:
    original: Connection          # copy taken at pointer-down
    dragged_end: str              # "source" | "target"
    fixed_port_id: str


@dataclass
class PendingConnection:
    """A connection being dragged.  anchor is re-resolved from the port every move."""
    anchor_port_id: str
    anchor_node_id: str
    anchor: Point
    current: Point
    compatible_port_id: Optional[str] = None
    reconnect: Optional[ReconnectInfo] = None


@dataclass
class ResizeCapture:
    item_id: str
    kind: EntityKind
    handle: str
    original: Rect
    start: Point


@dataclass
class DragCapture:
    start: Point
    # item id -> (kind, start position)
    items: dict = field(default_factory=dict)
    moved: bool = False


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class InteractionController:
    """Owns the current Mode and the state captured for it.

    Listeners are registered with the on_<event> methods below.
    """

    def __init__(self, model: GraphModel, selection: SelectionSet, viewport: Viewport):
        self.model = model
        self.selection = selection
        self.viewport = viewport

        self.mode = Mode.IDLE
        self.pending: Optional[PendingConnection] = None
        self.box: Optional[Rect] = None
        self._box_anchor: Optional[Point] = None
        self._drag: Optional[DragCapture] = None
        self._resize: Optional[ResizeCapture] = None
        self._pan_last: Optional[Point] = None
        self._hover: Hit = Hit()
        self._cursor = "default"

        self._mode_changed_listeners: list[Callable[[Mode], None]] = []
        self._connection_preview_listeners: list[Callable[[Optional[PendingConnection]], None]] = []
        self._box_changed_listeners: list[Callable[[Optional[Rect]], None]] = []
        self._items_moved_listeners: list[Callable[[list[str]], None]] = []
        self._resize_finished_listeners: list[Callable[[str], None]] = []
        self._connection_completed_listeners: list[Callable[[Connection], None]] = []
        self._reconnection_failed_listeners: list[Callable[[Connection], None]] = []
        self._interaction_finished_listeners: list[Callable[[Mode], None]] = []
        self._context_requested_listeners: list[Callable[[Hit, Point], None]] = []
        self._hover_changed_listeners: list[Callable[[Hit], None]] = []
        self._cursor_changed_listeners: list[Callable[[str], None]] = []

    # -- Listener registration --

    def on_mode_changed(self, callback: Callable[[Mode], None]) -> None:
        self._mode_changed_listeners.append(callback)

    def on_connection_preview(self, callback: Callable[[Optional[PendingConnection]], None]) -> None:
        self._connection_preview_listeners.append(callback)

    def on_box_changed(self, callback: Callable[[Optional[Rect]], None]) -> None:
        self._box_changed_listeners.append(callback)

    def on_items_moved(self, callback: Callable[[list[str]], None]) -> None:
        self._items_moved_listeners.append(callback)

    def on_resize_finished(self, callback: Callable[[str], None]) -> None:
        self._resize_finished_listeners.append(callback)

    def on_connection_completed(self, callback: Callable[[Connection], None]) -> None:
        self._connection_completed_listeners.append(callback)

    def on_reconnection_failed(self, callback: Callable[[Connection], None]) -> None:
        self._reconnection_failed_listeners.append(callback)

    def on_interaction_finished(self, callback: Callable[[Mode], None]) -> None:
        """Fired after a move, resize or connection that changed the model."""
        self._interaction_finished_listeners.append(callback)

    def on_context_requested(self, callback: Callable[[Hit, Point], None]) -> None:
        self._context_requested_listeners.append(callback)

    def on_hover_changed(self, callback: Callable[[Hit], None]) -> None:
        self._hover_changed_listeners.append(callback)

    def on_cursor_changed(self, callback: Callable[[str], None]) -> None:
        self._cursor_changed_listeners.append(callback)

    @staticmethod
    def _fire(listeners: list, *args) -> None:
        for cb in list(listeners):
            cb(*args)

    # -- Helpers --

    @property
    def resize_capture(self) -> Optional[ResizeCapture]:
        return self._resize

    @property
    def cursor(self) -> str:
        return self._cursor

    def _set_mode(self, mode: Mode) -> None:
        if mode is not self.mode:
            self.mode = mode
            self._fire(self._mode_changed_listeners, mode)

    def _set_cursor(self, cursor: str) -> None:
        if cursor != self._cursor:
            self._cursor = cursor
            self._fire(self._cursor_changed_listeners, cursor)

    def _hit(self, world: Point, connecting: bool = False) -> Hit:
        return hit_test(world, self.viewport.scale, self.model, self.selection,
                        connecting=connecting)

    def _reset_captures(self) -> None:
        self.pending = None
        self.box = None
        self._box_anchor = None
        self._drag = None
        self._resize = None
        self._pan_last = None

    # ------------------------------------------------------------------
    # Pointer down
    # ------------------------------------------------------------------

    def pointer_down(self, ev: PointerEvent) -> None:
        if self.mode in (Mode.DRAGGING_CONNECTION, Mode.RECONNECTING_CONNECTION):
            if ev.button is Button.SECONDARY:
                self.cancel()
            return
        if self.mode is not Mode.IDLE:
            return

        world = self.viewport.client_to_canvas(ev.client)
        hit = self._hit(world)

        if ev.button is Button.MIDDLE:
            self._begin_pan(ev.client)
            return
        if ev.button is Button.SECONDARY:
            self._fire(self._context_requested_listeners, hit, ev.client)
            return

        if hit.kind is HitKind.RESIZE_HANDLE:
            self._begin_resize(hit, world)
        elif hit.kind is HitKind.PORT:
            self._begin_connection(hit, world)
        elif hit.kind is HitKind.CONNECTION:
            if hit.region in (REGION_SOURCE_GRIP, REGION_TARGET_GRIP):
                self._begin_reconnect(hit, world)
            elif ev.modifiers.toggle:
                self.selection.toggle(hit.entity_id)
            else:
                self.selection.select(hit.entity_id)
        elif hit.kind in (HitKind.NODE, HitKind.NOTE, HitKind.GROUP):
            self._begin_drag(hit, world, ev.modifiers)
        elif ev.modifiers.alt:
            self._begin_pan(ev.client)
        else:
            if not ev.modifiers.additive:
                self.selection.clear()
            self._box_anchor = world
            self.box = Rect(world.x, world.y, 0, 0)
            self._set_mode(Mode.BOX_SELECTING)
            self._fire(self._box_changed_listeners, self.box)

    def _begin_pan(self, client: Point) -> None:
        self._pan_last = client
        self._set_mode(Mode.PANNING)
        self._set_cursor("grabbing")

    def _begin_resize(self, hit: Hit, world: Point) -> None:
        item = self.model.get_node(hit.entity_id) or self.model.get_note(hit.entity_id)
        if item is None:
            return
        self._resize = ResizeCapture(item_id=item.id, kind=item.kind, handle=hit.handle,
                                     original=item.rect, start=world)
        self._set_mode(Mode.RESIZING_ITEM)
        self._set_cursor(cursor_for_handle(hit.handle))

    def _begin_connection(self, hit: Hit, world: Point) -> None:
        port = self.model.get_port(hit.port_id)
        node = self.model.get_node(hit.entity_id)
        if port is None or node is None or port.is_hidden:
            return
        anchor = port_position(node, port)
        if anchor is None:
            return
        self.pending = PendingConnection(anchor_port_id=port.id, anchor_node_id=node.id,
                                         anchor=anchor, current=world)
        self._set_mode(Mode.DRAGGING_CONNECTION)
        self._set_cursor("crosshair")
        self._fire(self._connection_preview_listeners, self.pending)

    def _begin_reconnect(self, hit: Hit, world: Point) -> None:
        conn = self.model.get_connection(hit.entity_id)
        if conn is None:
            return
        dragged = "source" if hit.region == REGION_SOURCE_GRIP else "target"
        fixed_id = conn.target_port_id if dragged == "source" else conn.source_port_id
        fixed = self.model.get_port(fixed_id)
        fixed_node = self.model.port_node(fixed) if fixed is not None else None
        if fixed is None or fixed_node is None or fixed.is_hidden:
            return
        anchor = port_position(fixed_node, fixed)
        self.pending = PendingConnection(
            anchor_port_id=fixed.id, anchor_node_id=fixed_node.id,
            anchor=anchor, current=world,
            reconnect=ReconnectInfo(original=clone_connection(conn),
                                    dragged_end=dragged, fixed_port_id=fixed.id),
        )
        self.selection.select(conn.id)
        self._set_mode(Mode.RECONNECTING_CONNECTION)
        self._set_cursor("crosshair")
        self._fire(self._connection_preview_listeners, self.pending)

    def _begin_drag(self, hit: Hit, world: Point, mods: Modifiers) -> None:
        item_id = hit.entity_id
        if mods.toggle:
            self.selection.toggle(item_id)
        elif item_id not in self.selection:
            self.selection.select(item_id, additive=mods.shift)

        drag = DragCapture(start=world)
        for sid in self.selection:
            self._capture_item(drag, sid)
        if not drag.items:
            self._capture_item(drag, item_id)
        self._drag = drag
        self._set_mode(Mode.DRAGGING_ITEMS)
        self._set_cursor("grabbing")

    def _capture_item(self, drag: DragCapture, item_id: str) -> None:
        found = self.model.get_entity(item_id)
        if found is None:
            return
        kind, item = found
        if kind not in (EntityKind.NODE, EntityKind.NOTE, EntityKind.GROUP):
            return
        drag.items.setdefault(item_id, (kind, item.position))
        if kind is EntityKind.GROUP:
            for child_id in item.child_node_ids:
                child = self.model.get_node(child_id)
                if child is not None:
                    drag.items.setdefault(child_id, (EntityKind.NODE, child.position))

    # ------------------------------------------------------------------
    # Pointer move
    # ------------------------------------------------------------------

    def pointer_move(self, ev: PointerEvent) -> None:
        world = self.viewport.client_to_canvas(ev.client)

        if self.mode is Mode.IDLE:
            self._update_hover(world)
        elif self.mode is Mode.PANNING:
            if self._pan_last is not None:
                d = ev.client - self._pan_last
                self.viewport.pan(d.x, d.y)
                self._pan_last = ev.client
        elif self.mode is Mode.DRAGGING_ITEMS:
            self._drag_to(world)
        elif self.mode is Mode.RESIZING_ITEM:
            self._resize_to(world)
        elif self.mode is Mode.BOX_SELECTING:
            self.box = Rect.from_points(self._box_anchor, world)
            self._fire(self._box_changed_listeners, self.box)
        elif self.mode in (Mode.DRAGGING_CONNECTION, Mode.RECONNECTING_CONNECTION):
            self._track_connection(world)

    def _update_hover(self, world: Point) -> None:
        hit = self._hit(world)
        if hit != self._hover:
            self._hover = hit
            self._fire(self._hover_changed_listeners, hit)
        if hit.kind is HitKind.RESIZE_HANDLE:
            cursor = cursor_for_handle(hit.handle)
        elif hit.kind in (HitKind.PORT, HitKind.CONNECTION):
            cursor = "pointer"
        elif hit.kind in (HitKind.NODE, HitKind.NOTE, HitKind.GROUP):
            cursor = "move"
        else:
            cursor = "default"
        self._set_cursor(cursor)

    def _drag_to(self, world: Point) -> None:
        drag = self._drag
        if drag is None:
            return
        delta = world - drag.start
        moved = []
        for item_id, (kind, start) in drag.items.items():
            pos = self.viewport.snap_point(start + delta)
            if kind is EntityKind.NODE:
                ok = self.model.move_node(item_id, pos)
            elif kind is EntityKind.NOTE:
                ok = self.model.move_note(item_id, pos)
            else:
                ok = self.model.set_group_position(item_id, pos)
            if ok:
                moved.append(item_id)
        if moved:
            drag.moved = True
            self._fire(self._items_moved_listeners, moved)

    def _resize_to(self, world: Point) -> None:
        cap = self._resize
        if cap is None:
            return
        d = world - cap.start
        grid = self.viewport.snap_grid
        if cap.kind is EntityKind.NODE:
            node = self.model.get_node(cap.item_id)
            if node is None:
                return
            rect = resized_rect(cap.original, cap.handle, d.x, d.y,
                                min_node_width(node), min_node_height(node))
            self.model.resize_node(cap.item_id, rect, grid)
        else:
            note = self.model.get_note(cap.item_id)
            if note is None:
                return
            rect = resized_rect(cap.original, cap.handle, d.x, d.y,
                                MIN_NOTE_W, min_note_height(note))
            self.model.update_note_rect(cap.item_id, rect, grid)

    def is_connection_compatible(self, pending: PendingConnection, candidate: Port) -> bool:
        if candidate.is_hidden:
            return False
        anchor = self.model.get_port(pending.anchor_port_id)
        if anchor is None or candidate.node_id == anchor.node_id:
            return False
        if pending.reconnect is not None:
            if candidate.id == pending.reconnect.fixed_port_id:
                return False
            return candidate.direction is anchor.direction.opposite
        return candidate.direction is not anchor.direction

    def _track_connection(self, world: Point) -> None:
        pending = self.pending
        if pending is None:
            return
        anchor_node = self.model.get_node(pending.anchor_node_id)
        anchor_port = self.model.get_port(pending.anchor_port_id)
        anchor = port_position(anchor_node, anchor_port) if anchor_node and anchor_port else None
        if anchor is None:
            # anchor port deleted or hidden mid-drag
            self.cancel()
            return
        pending.anchor = anchor

        compatible = None
        hit = self._hit(world, connecting=True)
        if hit.kind is HitKind.PORT:
            candidate = self.model.get_port(hit.port_id)
            if candidate is not None and self.is_connection_compatible(pending, candidate):
                compatible = candidate
        if compatible is not None:
            pending.current = port_position(self.model.get_node(compatible.node_id), compatible)
            pending.compatible_port_id = compatible.id
        else:
            pending.current = world
            pending.compatible_port_id = None
        self._fire(self._connection_preview_listeners, pending)

    # ------------------------------------------------------------------
    # Pointer up / leave / cancel
    # ------------------------------------------------------------------

    def pointer_up(self, ev: PointerEvent) -> None:
        mode = self.mode
        world = self.viewport.client_to_canvas(ev.client)
        mutated = False

        if mode in (Mode.DRAGGING_CONNECTION, Mode.RECONNECTING_CONNECTION):
            pending = self.pending
            self.pending = None
            self._fire(self._connection_preview_listeners, None)
            if pending is not None and pending.compatible_port_id is not None:
                hit = self._hit(world, connecting=True)
                if hit.kind is HitKind.PORT and hit.port_id == pending.compatible_port_id:
                    if pending.reconnect is not None:
                        mutated = self._complete_reconnect(pending.reconnect, hit.port_id)
                    else:
                        mutated = self._complete_connection(pending.anchor_port_id, hit.port_id)
        elif mode is Mode.DRAGGING_ITEMS:
            if self._drag is not None and self._drag.moved:
                self._fire(self._items_moved_listeners, list(self._drag.items))
                mutated = True
        elif mode is Mode.RESIZING_ITEM:
            if self._resize is not None and self.model.has(self._resize.item_id):
                self._fire(self._resize_finished_listeners, self._resize.item_id)
                mutated = True
        elif mode is Mode.BOX_SELECTING:
            if self.box is not None:
                ids = items_in_rect(self.model, self.box)
                self.selection.select_many(ids, additive=ev.modifiers.additive)
            self._fire(self._box_changed_listeners, None)

        self._reset_captures()
        self._set_mode(Mode.IDLE)
        self._set_cursor("default")
        if mutated:
            self._fire(self._interaction_finished_listeners, mode)

    def _complete_connection(self, anchor_port_id: str, other_port_id: str) -> bool:
        anchor = self.model.get_port(anchor_port_id)
        if anchor is None:
            return False
        if anchor.is_output:
            src, dst = anchor_port_id, other_port_id
        else:
            src, dst = other_port_id, anchor_port_id
        result = self.model.create_connection(src, dst)
        if result:
            self._fire(self._connection_completed_listeners, result.connection)
        return bool(result)

    def _complete_reconnect(self, info: ReconnectInfo, new_port_id: str) -> bool:
        original = info.original
        if self.model.get_connection(original.id) is None:
            return False
        z_index = [c.id for c in self.model.connections].index(original.id)
        self.model.delete_connection(original.id)
        if info.dragged_end == "source":
            src, dst = new_port_id, info.fixed_port_id
        else:
            src, dst = info.fixed_port_id, new_port_id
        result = self.model.create_connection(src, dst, label=original.label)
        if result:
            self.selection.select(result.connection.id)
            self._fire(self._connection_completed_listeners, result.connection)
            return True

        restored = self.model.create_connection(original.source_port_id, original.target_port_id,
                                                connection_id=original.id, label=original.label,
                                                index=z_index)
        if restored:
            self.selection.select(restored.connection.id)
        self._fire(self._reconnection_failed_listeners, original)
        return False

    def pointer_leave(self, ev: PointerEvent) -> None:
        if self.mode in (Mode.DRAGGING_CONNECTION, Mode.RECONNECTING_CONNECTION):
            self.cancel()
        elif self.mode is not Mode.IDLE:
            self.pointer_up(ev)
        if self._hover.kind is not HitKind.BACKGROUND:
            self._hover = Hit()
            self._fire(self._hover_changed_listeners, self._hover)
        self._set_cursor("default")

    def cancel(self) -> None:
        """Abort the current interaction (Escape).  Connection drags leave the graph untouched."""
        mode = self.mode
        if mode is Mode.IDLE:
            return
        had_pending = self.pending is not None
        had_box = self.box is not None
        # live moves / resizes already landed in the model and stay there
        applied = ((self._drag is not None and self._drag.moved) or
                   (self._resize is not None and self.model.has(self._resize.item_id)))
        self._reset_captures()
        if had_pending:
            self._fire(self._connection_preview_listeners, None)
        if had_box:
            self._fire(self._box_changed_listeners, None)
        self._set_mode(Mode.IDLE)
        self._set_cursor("default")
        if applied:
            self._fire(self._interaction_finished_listeners, mode)

    # ------------------------------------------------------------------
    # Wheel
    # ------------------------------------------------------------------

    def wheel(self, ev: WheelEvent) -> None:
        self.viewport.zoom(ev.delta_y, ev.client)
