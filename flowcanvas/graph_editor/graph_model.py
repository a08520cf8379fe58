"""Diagram graph data model.

Pure Python, no Qt dependency.  Owns every entity the canvas edits (nodes,
their ports, connections, sticky notes, groups) and is the only place any of
them are created or destroyed.  Other layers (the interaction state machine,
the property panel, clipboard, undo) call these operations and never mutate
entities in place.

Entities live in id-addressed dicts; insertion order is the z-order (last is
topmost).  Every entity carries an explicit `kind` tag.

Ports:
  fixed     – instantiated from the NodeDefinition, live and die with the node
  dynamic   – added/removed at runtime; inputs are also derived from
              {{variable}} placeholders in node data
  hidden    – dynamic only; never connected, never hit-tested, no position

Capacity: input ports accept 1 connection unless the definition says
otherwise, outputs are unlimited.  Port.connections is a reverse index that
the model rebuilds from the connection table on every connection mutation.

Connection rules (checked in this order, first failure is the decline reason):
  - both ports exist
  - neither port is hidden
  - ports on different nodes
  - source is an output, target is an input
  - target below capacity
  - source below capacity
  - no existing connection between the two ports
"""

from __future__ import annotations

import copy
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .geometry import (
    Point, Rect, bounding_rect, snap_value, snap_up,
    NODE_HEADER_H, PORT_SPACING,
    DEFAULT_NODE_W, DEFAULT_NODE_H, MIN_NODE_W, MIN_NODE_H,
    DEFAULT_NOTE_W, DEFAULT_NOTE_H, MIN_NOTE_W, MIN_NOTE_H,
    GROUP_HEADER_H, GROUP_PADDING, GROUP_MIN_W, GROUP_MIN_H,
)


UNLIMITED = -1   # PortDef.max_connections value meaning "no limit"

VARIABLE_RE = re.compile(r"\{\{([a-zA-Z0-9_.-]+)\}\}")


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class EntityKind(Enum):
    NODE       = "node"
    PORT       = "port"
    CONNECTION = "connection"
    NOTE       = "note"
    GROUP      = "group"


class PortDirection(Enum):
    INPUT  = "input"
    OUTPUT = "output"

    @property
    def opposite(self) -> "PortDirection":
        return PortDirection.OUTPUT if self is PortDirection.INPUT else PortDirection.INPUT


class ConnectDecline(Enum):
    PORT_NOT_FOUND           = "port_not_found"
    HIDDEN_PORT              = "hidden_port"
    SELF_CONNECTION          = "self_connection"
    WRONG_DIRECTION          = "wrong_direction"
    TARGET_CAPACITY_EXCEEDED = "target_capacity_exceeded"
    SOURCE_CAPACITY_EXCEEDED = "source_capacity_exceeded"
    DUPLICATE                = "duplicate"


# ---------------------------------------------------------------------------
# Node definitions
# ---------------------------------------------------------------------------

@dataclass
class PortDef:
    name: str
    max_connections: Optional[int] = None    # None = direction default; UNLIMITED = no limit
    description: str = ""


@dataclass
class NodeDefinition:
    id: str
    title: str
    category: str = "General"
    inputs: list[PortDef] = field(default_factory=list)
    outputs: list[PortDef] = field(default_factory=list)
    width: float = DEFAULT_NODE_W
    height: float = DEFAULT_NODE_H
    min_width: Optional[float] = None
    min_height: Optional[float] = None
    color: str = "#666666"
    defaults: dict = field(default_factory=dict)


BUILTIN_DEFINITIONS = [
    NodeDefinition(id="trigger", title="Trigger", category="Triggers",
                   outputs=[PortDef("Out")], color="#1a3a5c"),
    NodeDefinition(id="action", title="Action", category="Actions",
                   inputs=[PortDef("In")], outputs=[PortDef("Out")], color="#3a1a4a"),
    NodeDefinition(id="condition", title="If", category="Logic",
                   inputs=[PortDef("In")],
                   outputs=[PortDef("True"), PortDef("False")], color="#2a3a1c"),
    NodeDefinition(id="merge", title="Merge", category="Logic",
                   inputs=[PortDef("A"), PortDef("B")], outputs=[PortDef("Out")]),
    NodeDefinition(id="collect", title="Collect", category="Logic",
                   inputs=[PortDef("Items", max_connections=UNLIMITED)],
                   outputs=[PortDef("List")]),
    NodeDefinition(id="template", title="Template", category="Text",
                   outputs=[PortDef("Text")], color="#3a2a1a",
                   defaults={"template": "Hello {{name}}"}),
]


def get_definition(def_id: str) -> Optional[NodeDefinition]:
    return next((d for d in BUILTIN_DEFINITIONS if d.id == def_id), None)


def _resolve_capacity(direction: PortDirection, requested: Optional[int]) -> Optional[int]:
    if requested is None:
        return 1 if direction is PortDirection.INPUT else None
    if requested < 0:
        return None
    return int(requested)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Port:
    id: str
    name: str
    direction: PortDirection
    node_id: str
    is_dynamic: bool = False
    is_hidden: bool = False
    max_connections: Optional[int] = None    # None = unlimited
    variable_name: Optional[str] = None
    description: str = ""
    connections: list[str] = field(default_factory=list)
    kind: EntityKind = field(default=EntityKind.PORT, init=False)

    @property
    def is_output(self) -> bool:
        return self.direction is PortDirection.OUTPUT

    def has_capacity(self) -> bool:
        return self.max_connections is None or len(self.connections) < self.max_connections


@dataclass(eq=False)
class Node:
    """One node on the canvas.

    definition_id – NodeDefinition this node was created from.
    position      – top-left corner, world coords.
    data          – user configuration; string values may hold {{variables}}.
    group_id      – owning NodeGroup, if any.
    """
    id: str
    title: str
    definition_id: str
    position: Point
    width: float = DEFAULT_NODE_W
    height: float = DEFAULT_NODE_H
    fixed_inputs: list[Port] = field(default_factory=list)
    fixed_outputs: list[Port] = field(default_factory=list)
    dynamic_inputs: list[Port] = field(default_factory=list)
    dynamic_outputs: list[Port] = field(default_factory=list)
    min_width: Optional[float] = None
    min_height: Optional[float] = None
    data: dict = field(default_factory=dict)
    color: str = "#666666"
    group_id: Optional[str] = None
    kind: EntityKind = field(default=EntityKind.NODE, init=False)

    @property
    def rect(self) -> Rect:
        return Rect(self.position.x, self.position.y, self.width, self.height)

    def all_ports(self) -> list[Port]:
        return self.fixed_inputs + self.fixed_outputs + self.dynamic_inputs + self.dynamic_outputs

    def ports_for(self, direction: PortDirection) -> list[Port]:
        """Fixed ports first, then dynamic, in one direction."""
        if direction is PortDirection.INPUT:
            return self.fixed_inputs + self.dynamic_inputs
        return self.fixed_outputs + self.dynamic_outputs

    def visible_ports(self, direction: PortDirection) -> list[Port]:
        return [p for p in self.ports_for(direction) if not p.is_hidden]


@dataclass(eq=False)
class Connection:
    id: str
    source_port_id: str
    target_port_id: str
    source_node_id: str
    target_node_id: str
    label: str = ""
    kind: EntityKind = field(default=EntityKind.CONNECTION, init=False)


@dataclass
class NoteStyle:
    background_color: str = "#2a2a2a"
    text_color: str = "#ffffff"
    font_size: int = 14


@dataclass(eq=False)
class StickyNote:
    id: str
    content: str
    position: Point
    width: float = DEFAULT_NOTE_W
    height: float = DEFAULT_NOTE_H
    style: NoteStyle = field(default_factory=NoteStyle)
    kind: EntityKind = field(default=EntityKind.NOTE, init=False)

    @property
    def rect(self) -> Rect:
        return Rect(self.position.x, self.position.y, self.width, self.height)


@dataclass(eq=False)
class NodeGroup:
    id: str
    title: str
    position: Point
    width: float
    height: float
    child_node_ids: list[str] = field(default_factory=list)
    kind: EntityKind = field(default=EntityKind.GROUP, init=False)

    @property
    def rect(self) -> Rect:
        return Rect(self.position.x, self.position.y, self.width, self.height)

    @property
    def header_rect(self) -> Rect:
        return Rect(self.position.x, self.position.y, self.width, GROUP_HEADER_H)


@dataclass(frozen=True)
class ConnectResult:
    """Outcome of create_connection: a connection, or the reason it was declined."""
    connection: Optional[Connection] = None
    reason: Optional[ConnectDecline] = None

    def __bool__(self) -> bool:
        return self.connection is not None


# ---------------------------------------------------------------------------
# Port geometry, shared by hit-testing and painting
# ---------------------------------------------------------------------------

def port_position(node: Node, port: Port) -> Optional[Point]:
    """Centre of a port circle in world coordinates, or None if hidden.

    Slot = visible ports of the same direction that precede this one (fixed
    before dynamic); hidden ports take no slot.
    """
    if port.is_hidden:
        return None
    visible = node.visible_ports(port.direction)
    slot = next((i for i, p in enumerate(visible) if p.id == port.id), None)
    if slot is None:
        return None
    y = NODE_HEADER_H + PORT_SPACING * (slot + 0.5)
    x = node.width if port.is_output else 0.0
    return Point(node.position.x + x, node.position.y + y)


def min_node_width(node: Node) -> float:
    return node.min_width or MIN_NODE_W


def min_node_height(node: Node) -> float:
    """Grows with the busier side so port rows never overlap."""
    n_ports = max(len(node.visible_ports(PortDirection.INPUT)),
                  len(node.visible_ports(PortDirection.OUTPUT)))
    needed = NODE_HEADER_H + n_ports * PORT_SPACING + PORT_SPACING
    return max(node.min_height or MIN_NODE_H, needed)


def min_note_height(note: StickyNote) -> float:
    return max(MIN_NOTE_H, note.style.font_size * 2)


def fit_rect(rect: Rect, min_w: float, min_h: float, grid: Optional[float] = None) -> Rect:
    """Clamp a rect to a minimum size, optionally snapping its edges to a grid.

    With a grid the minimums are rounded up to whole cells first, so feeding
    the result back in returns it unchanged.
    """
    w = max(min_w, rect.width)
    h = max(min_h, rect.height)
    if not grid:
        return Rect(rect.x, rect.y, w, h)
    min_w, min_h = snap_up(min_w, grid), snap_up(min_h, grid)
    x, y = snap_value(rect.x, grid), snap_value(rect.y, grid)
    right = snap_value(rect.x + w, grid)
    bottom = snap_value(rect.y + h, grid)
    return Rect(x, y, max(min_w, right - x), max(min_h, bottom - y))


# ---------------------------------------------------------------------------
# Explicit per-type copies
# ---------------------------------------------------------------------------

def clone_port(port: Port) -> Port:
    return Port(
        id=port.id, name=port.name, direction=port.direction, node_id=port.node_id,
        is_dynamic=port.is_dynamic, is_hidden=port.is_hidden,
        max_connections=port.max_connections, variable_name=port.variable_name,
        description=port.description, connections=list(port.connections),
    )


def clone_node(node: Node) -> Node:
    return Node(
        id=node.id, title=node.title, definition_id=node.definition_id,
        position=node.position, width=node.width, height=node.height,
        fixed_inputs=[clone_port(p) for p in node.fixed_inputs],
        fixed_outputs=[clone_port(p) for p in node.fixed_outputs],
        dynamic_inputs=[clone_port(p) for p in node.dynamic_inputs],
        dynamic_outputs=[clone_port(p) for p in node.dynamic_outputs],
        min_width=node.min_width, min_height=node.min_height,
        data=copy.deepcopy(node.data), color=node.color, group_id=node.group_id,
    )


def clone_connection(conn: Connection) -> Connection:
    return Connection(
        id=conn.id, source_port_id=conn.source_port_id, target_port_id=conn.target_port_id,
        source_node_id=conn.source_node_id, target_node_id=conn.target_node_id,
        label=conn.label,
    )


def clone_note(note: StickyNote) -> StickyNote:
    return StickyNote(
        id=note.id, content=note.content, position=note.position,
        width=note.width, height=note.height,
        style=NoteStyle(note.style.background_color, note.style.text_color,
                        note.style.font_size),
    )


def clone_group(group: NodeGroup) -> NodeGroup:
    return NodeGroup(
        id=group.id, title=group.title, position=group.position,
        width=group.width, height=group.height,
        child_node_ids=list(group.child_node_ids),
    )


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def port_to_dict(port: Port) -> dict:
    return {
        "id": port.id,
        "name": port.name,
        "max_connections": UNLIMITED if port.max_connections is None else port.max_connections,
        "description": port.description,
        "variable_name": port.variable_name,
        "is_hidden": port.is_hidden,
    }


def node_to_dict(node: Node) -> dict:
    return {
        "id": node.id,
        "title": node.title,
        "definition_id": node.definition_id,
        "x": node.position.x, "y": node.position.y,
        "width": node.width, "height": node.height,
        "min_width": node.min_width, "min_height": node.min_height,
        "color": node.color,
        "data": copy.deepcopy(node.data),
        "fixed_inputs":    [port_to_dict(p) for p in node.fixed_inputs],
        "fixed_outputs":   [port_to_dict(p) for p in node.fixed_outputs],
        "dynamic_inputs":  [port_to_dict(p) for p in node.dynamic_inputs],
        "dynamic_outputs": [port_to_dict(p) for p in node.dynamic_outputs],
    }


def connection_to_dict(conn: Connection) -> dict:
    return {
        "id": conn.id,
        "source_port_id": conn.source_port_id,
        "target_port_id": conn.target_port_id,
        "source_node_id": conn.source_node_id,
        "target_node_id": conn.target_node_id,
        "label": conn.label,
    }


def note_to_dict(note: StickyNote) -> dict:
    return {
        "id": note.id,
        "content": note.content,
        "x": note.position.x, "y": note.position.y,
        "width": note.width, "height": note.height,
        "style": {
            "background_color": note.style.background_color,
            "text_color": note.style.text_color,
            "font_size": note.style.font_size,
        },
    }


def group_to_dict(group: NodeGroup) -> dict:
    return {
        "id": group.id,
        "title": group.title,
        "x": group.position.x, "y": group.position.y,
        "width": group.width, "height": group.height,
        "child_node_ids": list(group.child_node_ids),
    }


def _definition_from_node_dict(d: dict) -> NodeDefinition:
    """Rebuild just enough of a definition to re-create a saved node's fixed ports."""
    def port_defs(key):
        return [PortDef(p.get("name", "?"), p.get("max_connections"), p.get("description", ""))
                for p in d.get(key, [])]
    return NodeDefinition(
        id=d.get("definition_id", ""),
        title=d.get("title", ""),
        inputs=port_defs("fixed_inputs"),
        outputs=port_defs("fixed_outputs"),
        width=d.get("width", DEFAULT_NODE_W),
        height=d.get("height", DEFAULT_NODE_H),
        min_width=d.get("min_width"),
        min_height=d.get("min_height"),
        color=d.get("color", "#666666"),
    )


def _collect_variables(obj, out: list[str]) -> None:
    if isinstance(obj, str):
        for name in VARIABLE_RE.findall(obj):
            if name not in out:
                out.append(name)
    elif isinstance(obj, dict):
        for v in obj.values():
            _collect_variables(v, out)
    elif isinstance(obj, (list, tuple)):
        for v in obj:
            _collect_variables(v, out)


# ---------------------------------------------------------------------------
# Graph model
# ---------------------------------------------------------------------------

class GraphModel:
    """Mutable diagram graph and the only mutator of its entities.

    Listeners:
      on_change(cb(EntityKind))                      – a collection of that kind changed
      on_entity_deleted(cb(EntityKind, id))          – fired once per removed entity
      on_connection_declined(cb(reason, src, dst))   – create_connection refused
    """

    _NODE_FIELDS = ("title", "color", "data", "min_width", "min_height")
    _PORT_FIELDS = ("name", "description", "max_connections", "variable_name")

    def __init__(self):
        self._nodes: dict[str, Node] = {}
        self._ports: dict[str, Port] = {}
        self._connections: dict[str, Connection] = {}
        self._notes: dict[str, StickyNote] = {}
        self._groups: dict[str, NodeGroup] = {}

        self._change_listeners: list[Callable[[EntityKind], None]] = []
        self._delete_listeners: list[Callable[[EntityKind, str], None]] = []
        self._decline_listeners: list[Callable[[ConnectDecline, str, str], None]] = []

    # -- Listeners --

    def on_change(self, callback: Callable[[EntityKind], None]) -> None:
        self._change_listeners.append(callback)

    def on_entity_deleted(self, callback: Callable[[EntityKind, str], None]) -> None:
        self._delete_listeners.append(callback)

    def on_connection_declined(self, callback: Callable[[ConnectDecline, str, str], None]) -> None:
        self._decline_listeners.append(callback)

    def _changed(self, kind: EntityKind) -> None:
        for cb in list(self._change_listeners):
            cb(kind)

    def _deleted(self, kind: EntityKind, entity_id: str) -> None:
        for cb in list(self._delete_listeners):
            cb(kind, entity_id)

    # -- Accessors --

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    @property
    def notes(self) -> list[StickyNote]:
        return list(self._notes.values())

    @property
    def groups(self) -> list[NodeGroup]:
        return list(self._groups.values())

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def get_port(self, port_id: str) -> Optional[Port]:
        return self._ports.get(port_id)

    def get_connection(self, conn_id: str) -> Optional[Connection]:
        return self._connections.get(conn_id)

    def get_note(self, note_id: str) -> Optional[StickyNote]:
        return self._notes.get(note_id)

    def get_group(self, group_id: str) -> Optional[NodeGroup]:
        return self._groups.get(group_id)

    def get_entity(self, entity_id: str):
        """Look up any entity by id; returns (EntityKind, entity) or None."""
        for table in (self._nodes, self._connections, self._notes, self._groups, self._ports):
            entity = table.get(entity_id)
            if entity is not None:
                return entity.kind, entity
        return None

    def has(self, entity_id: str) -> bool:
        return self.get_entity(entity_id) is not None

    def port_node(self, port: Port) -> Optional[Node]:
        return self._nodes.get(port.node_id)

    def connections_for_node(self, node_id: str) -> list[Connection]:
        return [c for c in self._connections.values()
                if c.source_node_id == node_id or c.target_node_id == node_id]

    def connections_for_port(self, port_id: str) -> list[Connection]:
        return [c for c in self._connections.values()
                if c.source_port_id == port_id or c.target_port_id == port_id]

    def item_rect(self, item_id: str) -> Optional[Rect]:
        """Rect of a node, note or group."""
        item = self._nodes.get(item_id) or self._notes.get(item_id) or self._groups.get(item_id)
        return item.rect if item is not None else None

    def content_rect(self) -> Optional[Rect]:
        return bounding_rect([n.rect for n in self._nodes.values()] +
                             [n.rect for n in self._notes.values()] +
                             [g.rect for g in self._groups.values()])

    def _claim_id(self, requested: Optional[str] = None) -> str:
        if requested and not self.has(requested):
            return requested
        return str(uuid.uuid4())

    # -- Nodes --

    def create_node(self, definition: NodeDefinition, position: Point, *,
                    node_id: Optional[str] = None,
                    port_ids: Optional[list] = None) -> Node:
        """Instantiate a node and its fixed ports from a definition.

        port_ids optionally requests ids for the fixed ports (inputs, then
        outputs); an id already in use is replaced by a fresh one.
        """
        if not isinstance(position, Point) or not position.is_finite():
            raise ValueError(f"node position must be a finite Point, got {position!r}")

        node = Node(
            id=self._claim_id(node_id),
            title=definition.title,
            definition_id=definition.id,
            position=position,
            width=definition.width,
            height=definition.height,
            min_width=definition.min_width,
            min_height=definition.min_height,
            data=copy.deepcopy(definition.defaults),
            color=definition.color,
        )
        requested = iter(port_ids or [])
        for pd in definition.inputs:
            self._attach_port(node, PortDirection.INPUT, pd.name, dynamic=False,
                              max_connections=pd.max_connections,
                              description=pd.description, port_id=next(requested, None))
        for pd in definition.outputs:
            self._attach_port(node, PortDirection.OUTPUT, pd.name, dynamic=False,
                              max_connections=pd.max_connections,
                              description=pd.description, port_id=next(requested, None))
        self._nodes[node.id] = node
        self._sync_variable_ports(node)
        self._changed(EntityKind.NODE)
        return node

    def move_node(self, node_id: str, position: Point) -> bool:
        node = self._nodes.get(node_id)
        if node is None or not position.is_finite():
            return False
        if node.position != position:
            node.position = position
            self._changed(EntityKind.NODE)
        return True

    def resize_node(self, node_id: str, rect: Rect, grid: Optional[float] = None) -> Optional[Rect]:
        """Apply a rect, clamped to the port-driven minimum and optionally grid-snapped.

        Returns the rect actually applied, or None for an unknown node.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return None
        fitted = fit_rect(rect, min_node_width(node), min_node_height(node), grid)
        if fitted != node.rect:
            node.position = fitted.top_left
            node.width, node.height = fitted.width, fitted.height
            self._changed(EntityKind.NODE)
        return fitted

    def update_node(self, node_id: str, **fields) -> bool:
        """Set plain node fields (title, color, data, min_width, min_height).

        Does not touch ports; use update_node_data to re-derive variable ports.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return False
        for key, value in fields.items():
            if key not in self._NODE_FIELDS:
                raise ValueError(f"cannot update node field {key!r}")
            setattr(node, key, copy.deepcopy(value) if key == "data" else value)
        self._changed(EntityKind.NODE)
        return True

    def update_node_data(self, node_id: str, data: dict) -> bool:
        """Replace node data and add/remove the {{variable}} input ports it implies."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.data = copy.deepcopy(data)
        removed = self._sync_variable_ports(node)
        if removed:
            self._changed(EntityKind.CONNECTION)
        self._changed(EntityKind.NODE)
        return True

    def _sync_variable_ports(self, node: Node) -> int:
        """Returns the number of connections removed with stale variable ports."""
        wanted: list[str] = []
        _collect_variables(node.data, wanted)
        removed = 0
        for port in [p for p in node.dynamic_inputs
                     if p.variable_name and p.variable_name not in wanted]:
            removed += self._detach_port(node, port)
        for name in wanted:
            if not any(p.variable_name == name for p in node.dynamic_inputs):
                self._attach_port(node, PortDirection.INPUT, name, dynamic=True,
                                  max_connections=1, variable_name=name,
                                  description=f"Input for variable '{name}'")
        return removed

    def delete_node(self, node_id: str) -> bool:
        return self.delete_nodes([node_id]) == 1

    def delete_nodes(self, node_ids) -> int:
        """Delete nodes, cascading to their ports, connections and group membership."""
        doomed = [self._nodes[nid] for nid in dict.fromkeys(node_ids) if nid in self._nodes]
        if not doomed:
            return 0
        port_ids = {p.id for n in doomed for p in n.all_ports()}
        conn_ids = [c.id for c in self._connections.values()
                    if c.source_port_id in port_ids or c.target_port_id in port_ids]
        self._drop_connections(conn_ids)
        groups_touched = False
        for node in doomed:
            for port in node.all_ports():
                self._ports.pop(port.id, None)
            group = self._groups.get(node.group_id) if node.group_id else None
            if group is not None and node.id in group.child_node_ids:
                group.child_node_ids.remove(node.id)
                groups_touched = True
            del self._nodes[node.id]
            self._deleted(EntityKind.NODE, node.id)
        if conn_ids:
            self._changed(EntityKind.CONNECTION)
        if groups_touched:
            self._changed(EntityKind.GROUP)
        self._changed(EntityKind.NODE)
        return len(doomed)

    # -- Ports --

    def _attach_port(self, node: Node, direction: PortDirection, name: str, *,
                     dynamic: bool, max_connections: Optional[int] = None,
                     description: str = "", variable_name: Optional[str] = None,
                     hidden: bool = False, port_id: Optional[str] = None) -> Port:
        port = Port(
            id=self._claim_id(port_id),
            name=name,
            direction=direction,
            node_id=node.id,
            is_dynamic=dynamic,
            is_hidden=hidden if dynamic else False,
            max_connections=_resolve_capacity(direction, max_connections),
            variable_name=variable_name if dynamic and direction is PortDirection.INPUT else None,
            description=description,
        )
        if dynamic:
            target = node.dynamic_inputs if direction is PortDirection.INPUT else node.dynamic_outputs
        else:
            target = node.fixed_inputs if direction is PortDirection.INPUT else node.fixed_outputs
        target.append(port)
        self._ports[port.id] = port
        return port

    def _detach_port(self, node: Node, port: Port) -> int:
        conn_ids = [c.id for c in self.connections_for_port(port.id)]
        self._drop_connections(conn_ids)
        owner = node.dynamic_inputs if port.direction is PortDirection.INPUT else node.dynamic_outputs
        owner.remove(port)
        self._ports.pop(port.id, None)
        self._deleted(EntityKind.PORT, port.id)
        return len(conn_ids)

    def add_port(self, node_id: str, direction: PortDirection, name: str, *,
                 max_connections: Optional[int] = None,
                 variable_name: Optional[str] = None,
                 hidden: bool = False, description: str = "",
                 port_id: Optional[str] = None) -> Optional[Port]:
        """Add a dynamic port.

        An input with an existing variable_name (or an output with an existing
        name) is returned as-is, made visible if it was hidden and `hidden` is
        False.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return None
        if direction is PortDirection.INPUT and variable_name:
            existing = next((p for p in node.dynamic_inputs if p.variable_name == variable_name), None)
        elif direction is PortDirection.OUTPUT:
            existing = next((p for p in node.dynamic_outputs if p.name == name), None)
        else:
            existing = None
        if existing is not None:
            if existing.is_hidden and not hidden:
                existing.is_hidden = False
                self._changed(EntityKind.NODE)
            return existing

        port = self._attach_port(node, direction, name, dynamic=True,
                                 max_connections=max_connections,
                                 description=description, variable_name=variable_name,
                                 hidden=hidden, port_id=port_id)
        self._changed(EntityKind.NODE)
        return port

    def remove_port(self, port_id: str) -> bool:
        """Remove a dynamic port and every connection using it. Fixed ports stay."""
        port = self._ports.get(port_id)
        if port is None or not port.is_dynamic:
            return False
        node = self._nodes[port.node_id]
        if self._detach_port(node, port):
            self._changed(EntityKind.CONNECTION)
        self._changed(EntityKind.NODE)
        return True

    def set_port_hidden(self, port_id: str, hidden: bool) -> bool:
        """Hide or show a dynamic port. Hiding drops its connections."""
        port = self._ports.get(port_id)
        if port is None or not port.is_dynamic:
            return False
        if port.is_hidden == hidden:
            return True
        if hidden:
            conn_ids = [c.id for c in self.connections_for_port(port_id)]
            self._drop_connections(conn_ids)
            if conn_ids:
                self._changed(EntityKind.CONNECTION)
        port.is_hidden = hidden
        self._changed(EntityKind.NODE)
        return True

    def update_port(self, port_id: str, **fields) -> bool:
        """Set name / description / max_connections / variable_name.

        Lowering max_connections below the current count drops the most
        recent excess connections.
        """
        port = self._ports.get(port_id)
        if port is None:
            return False
        for key, value in fields.items():
            if key not in self._PORT_FIELDS:
                raise ValueError(f"cannot update port field {key!r}")
            if key == "max_connections":
                port.max_connections = _resolve_capacity(port.direction, value)
            else:
                setattr(port, key, value)
        if port.is_dynamic and not port.is_output and fields.get("variable_name"):
            port.name = fields["variable_name"]
        if port.max_connections is not None and len(port.connections) > port.max_connections:
            self._drop_connections(port.connections[port.max_connections:])
            self._changed(EntityKind.CONNECTION)
        self._changed(EntityKind.NODE)
        return True

    # -- Connections --

    def check_connection(self, source_port_id: str, target_port_id: str) -> Optional[ConnectDecline]:
        """Why create_connection would decline this pair, or None if it would succeed."""
        src = self._ports.get(source_port_id)
        dst = self._ports.get(target_port_id)
        if src is None or dst is None:
            return ConnectDecline.PORT_NOT_FOUND
        if src.is_hidden or dst.is_hidden:
            return ConnectDecline.HIDDEN_PORT
        if src.node_id == dst.node_id:
            return ConnectDecline.SELF_CONNECTION
        if src.direction is not PortDirection.OUTPUT or dst.direction is not PortDirection.INPUT:
            return ConnectDecline.WRONG_DIRECTION
        if not dst.has_capacity():
            return ConnectDecline.TARGET_CAPACITY_EXCEEDED
        if not src.has_capacity():
            return ConnectDecline.SOURCE_CAPACITY_EXCEEDED
        for c in self._connections.values():
            if {c.source_port_id, c.target_port_id} == {src.id, dst.id}:
                return ConnectDecline.DUPLICATE
        return None

    def create_connection(self, source_port_id: str, target_port_id: str, *,
                          connection_id: Optional[str] = None,
                          label: str = "",
                          index: Optional[int] = None) -> ConnectResult:
        """The only way a connection comes into existence.

        index places the connection at that position in z-order instead of
        on top.
        """
        reason = self.check_connection(source_port_id, target_port_id)
        if reason is not None:
            for cb in list(self._decline_listeners):
                cb(reason, source_port_id, target_port_id)
            return ConnectResult(reason=reason)

        src, dst = self._ports[source_port_id], self._ports[target_port_id]
        conn = Connection(
            id=self._claim_id(connection_id),
            source_port_id=src.id, target_port_id=dst.id,
            source_node_id=src.node_id, target_node_id=dst.node_id,
            label=label,
        )
        if index is None:
            self._connections[conn.id] = conn
        else:
            items = list(self._connections.items())
            items.insert(index, (conn.id, conn))
            self._connections.clear()
            self._connections.update(items)
        self._relink_ports(src.id, dst.id)
        self._changed(EntityKind.CONNECTION)
        return ConnectResult(connection=conn)

    def update_connection(self, conn_id: str, label: str) -> bool:
        conn = self._connections.get(conn_id)
        if conn is None:
            return False
        conn.label = label
        self._changed(EntityKind.CONNECTION)
        return True

    def delete_connection(self, conn_id: str) -> bool:
        return self.delete_connections([conn_id]) == 1

    def delete_connections(self, conn_ids) -> int:
        n = self._drop_connections(conn_ids)
        if n:
            self._changed(EntityKind.CONNECTION)
        return n

    def _drop_connections(self, conn_ids) -> int:
        touched: set[str] = set()
        dropped = 0
        for cid in list(conn_ids):
            conn = self._connections.pop(cid, None)
            if conn is None:
                continue
            touched.update((conn.source_port_id, conn.target_port_id))
            dropped += 1
            self._deleted(EntityKind.CONNECTION, cid)
        self._relink_ports(*touched)
        return dropped

    def _relink_ports(self, *port_ids: str) -> None:
        """Rebuild Port.connections for the given ports from the connection table."""
        for pid in port_ids:
            port = self._ports.get(pid)
            if port is not None:
                port.connections = [c.id for c in self._connections.values()
                                    if c.source_port_id == pid or c.target_port_id == pid]

    # -- Sticky notes --

    def create_note(self, position: Point, content: str = "New Note",
                    width: float = DEFAULT_NOTE_W, height: float = DEFAULT_NOTE_H, *,
                    style: Optional[NoteStyle] = None,
                    note_id: Optional[str] = None) -> StickyNote:
        if not isinstance(position, Point) or not position.is_finite():
            raise ValueError(f"note position must be a finite Point, got {position!r}")
        note = StickyNote(id=self._claim_id(note_id), content=content, position=position,
                          style=style or NoteStyle())
        fitted = fit_rect(Rect(position.x, position.y, width, height),
                          MIN_NOTE_W, min_note_height(note))
        note.width, note.height = fitted.width, fitted.height
        self._notes[note.id] = note
        self._changed(EntityKind.NOTE)
        return note

    def move_note(self, note_id: str, position: Point) -> bool:
        note = self._notes.get(note_id)
        if note is None or not position.is_finite():
            return False
        if note.position != position:
            note.position = position
            self._changed(EntityKind.NOTE)
        return True

    def update_note(self, note_id: str, content: Optional[str] = None, **style) -> bool:
        """Change note text and/or style fields (background_color, text_color, font_size)."""
        note = self._notes.get(note_id)
        if note is None:
            return False
        if content is not None:
            note.content = content
        for key, value in style.items():
            if not hasattr(note.style, key):
                raise ValueError(f"unknown note style field {key!r}")
            setattr(note.style, key, value)
        if note.height < min_note_height(note):
            note.height = min_note_height(note)
        self._changed(EntityKind.NOTE)
        return True

    def update_note_rect(self, note_id: str, rect: Rect, grid: Optional[float] = None) -> Optional[Rect]:
        note = self._notes.get(note_id)
        if note is None:
            return None
        fitted = fit_rect(rect, MIN_NOTE_W, min_note_height(note), grid)
        if fitted != note.rect:
            note.position = fitted.top_left
            note.width, note.height = fitted.width, fitted.height
            self._changed(EntityKind.NOTE)
        return fitted

    def delete_note(self, note_id: str) -> bool:
        return self.delete_notes([note_id]) == 1

    def delete_notes(self, note_ids) -> int:
        n = 0
        for nid in list(note_ids):
            if self._notes.pop(nid, None) is not None:
                n += 1
                self._deleted(EntityKind.NOTE, nid)
        if n:
            self._changed(EntityKind.NOTE)
        return n

    # -- Groups --

    def create_group(self, node_ids, title: str = "New Group", *,
                     group_id: Optional[str] = None,
                     rect: Optional[Rect] = None) -> Optional[NodeGroup]:
        """Group nodes; the frame wraps their bounding box plus padding and a header."""
        members = [self._nodes[nid] for nid in dict.fromkeys(node_ids) if nid in self._nodes]
        if not members:
            return None
        if rect is None:
            box = bounding_rect(n.rect for n in members)
            rect = Rect(box.x - GROUP_PADDING,
                        box.y - GROUP_PADDING - GROUP_HEADER_H,
                        box.width + GROUP_PADDING * 2,
                        box.height + GROUP_PADDING * 2 + GROUP_HEADER_H)
        group = NodeGroup(id=self._claim_id(group_id), title=title,
                          position=rect.top_left, width=rect.width, height=rect.height)
        self._groups[group.id] = group
        for node in members:
            self._unlink_from_group(node)
            node.group_id = group.id
            group.child_node_ids.append(node.id)
        self._changed(EntityKind.GROUP)
        self._changed(EntityKind.NODE)
        return group

    def _unlink_from_group(self, node: Node) -> None:
        old = self._groups.get(node.group_id) if node.group_id else None
        if old is not None and node.id in old.child_node_ids:
            old.child_node_ids.remove(node.id)
        node.group_id = None

    def move_group(self, group_id: str, delta: Point) -> bool:
        """Translate a group frame and every child node by delta."""
        group = self._groups.get(group_id)
        if group is None:
            return False
        group.position = group.position + delta
        for nid in group.child_node_ids:
            node = self._nodes.get(nid)
            if node is not None:
                node.position = node.position + delta
        self._changed(EntityKind.GROUP)
        self._changed(EntityKind.NODE)
        return True

    def set_group_position(self, group_id: str, position: Point) -> bool:
        """Move only the frame (children are moved separately by the caller)."""
        group = self._groups.get(group_id)
        if group is None or not position.is_finite():
            return False
        if group.position != position:
            group.position = position
            self._changed(EntityKind.GROUP)
        return True

    def resize_group(self, group_id: str, rect: Rect, grid: Optional[float] = None) -> Optional[Rect]:
        group = self._groups.get(group_id)
        if group is None:
            return None
        fitted = fit_rect(rect, GROUP_MIN_W, GROUP_MIN_H, grid)
        group.position = fitted.top_left
        group.width, group.height = fitted.width, fitted.height
        self._changed(EntityKind.GROUP)
        return fitted

    def update_group(self, group_id: str, title: str) -> bool:
        group = self._groups.get(group_id)
        if group is None:
            return False
        group.title = title
        self._changed(EntityKind.GROUP)
        return True

    def add_node_to_group(self, group_id: str, node_id: str) -> bool:
        group = self._groups.get(group_id)
        node = self._nodes.get(node_id)
        if group is None or node is None:
            return False
        self._unlink_from_group(node)
        node.group_id = group.id
        group.child_node_ids.append(node.id)
        self._changed(EntityKind.GROUP)
        return True

    def remove_node_from_group(self, group_id: str, node_id: str) -> bool:
        group = self._groups.get(group_id)
        node = self._nodes.get(node_id)
        if group is None or node is None or node_id not in group.child_node_ids:
            return False
        self._unlink_from_group(node)
        self._changed(EntityKind.GROUP)
        return True

    def delete_group(self, group_id: str, delete_children: bool = False) -> bool:
        """Remove a group frame; children are ungrouped, or deleted with it."""
        group = self._groups.pop(group_id, None)
        if group is None:
            return False
        children = list(group.child_node_ids)
        for nid in children:
            node = self._nodes.get(nid)
            if node is not None:
                node.group_id = None
        self._deleted(EntityKind.GROUP, group_id)
        if delete_children:
            self.delete_nodes(children)
        self._changed(EntityKind.GROUP)
        return True

    # -- Mixed --

    def delete_items(self, ids) -> int:
        """Delete any mix of connection / node / note / group ids."""
        ids = list(ids)
        n = self.delete_connections([i for i in ids if i in self._connections])
        n += self.delete_nodes([i for i in ids if i in self._nodes])
        n += self.delete_notes([i for i in ids if i in self._notes])
        for gid in [i for i in ids if i in self._groups]:
            n += self.delete_group(gid)
        return n

    def clear(self) -> None:
        self.delete_items(list(self._connections) + list(self._groups) +
                          list(self._nodes) + list(self._notes))

    # -- Serialisation --

    def to_dict(self, view_state: Optional[dict] = None) -> dict:
        return {
            "nodes":       [node_to_dict(n) for n in self._nodes.values()],
            "connections": [connection_to_dict(c) for c in self._connections.values()],
            "stickyNotes": [note_to_dict(n) for n in self._notes.values()],
            "groups":      [group_to_dict(g) for g in self._groups.values()],
            "viewState":   dict(view_state or {}),
        }

    def merge(self, d: dict, *, shift: Point = Point(), keep_ids: bool = True) -> dict[str, str]:
        """Re-create the entities of a saved dict through the validated constructors.

        Connections that are dangling, over capacity or otherwise invalid are
        dropped.  With keep_ids, saved ids are reused when free.  Returns a
        map of saved id -> live id for everything that was created.
        """
        id_map: dict[str, str] = {}

        def want(saved_id):
            return saved_id if keep_ids else None

        for nd in d.get("nodes", []):
            fixed_ids = [p.get("id") for p in nd.get("fixed_inputs", []) + nd.get("fixed_outputs", [])]
            pos = Point(float(nd.get("x", 0.0)) + shift.x, float(nd.get("y", 0.0)) + shift.y)
            try:
                node = self.create_node(_definition_from_node_dict(nd), pos,
                                        node_id=want(nd.get("id")),
                                        port_ids=[want(pid) for pid in fixed_ids])
            except ValueError:
                continue
            id_map[nd.get("id", node.id)] = node.id
            for saved_id, port in zip(fixed_ids, node.fixed_inputs + node.fixed_outputs):
                if saved_id:
                    id_map[saved_id] = port.id
            for key, direction in (("dynamic_inputs", PortDirection.INPUT),
                                   ("dynamic_outputs", PortDirection.OUTPUT)):
                for pd in nd.get(key, []):
                    port = self.add_port(node.id, direction, pd.get("name", "?"),
                                         max_connections=pd.get("max_connections"),
                                         variable_name=pd.get("variable_name"),
                                         hidden=pd.get("is_hidden", False),
                                         description=pd.get("description", ""),
                                         port_id=want(pd.get("id")))
                    if port is not None and pd.get("id"):
                        id_map[pd["id"]] = port.id
            self.update_node(node.id, data=nd.get("data", {}))

        for cd in d.get("connections", []):
            src = id_map.get(cd.get("source_port_id"))
            dst = id_map.get(cd.get("target_port_id"))
            if src is None or dst is None:
                continue
            result = self.create_connection(src, dst, connection_id=want(cd.get("id")),
                                            label=cd.get("label", ""))
            if result and cd.get("id"):
                id_map[cd["id"]] = result.connection.id

        for nd in d.get("stickyNotes", []):
            sd = nd.get("style", {})
            style = NoteStyle(sd.get("background_color", "#2a2a2a"),
                              sd.get("text_color", "#ffffff"),
                              sd.get("font_size", 14))
            pos = Point(float(nd.get("x", 0.0)) + shift.x, float(nd.get("y", 0.0)) + shift.y)
            try:
                note = self.create_note(pos, nd.get("content", ""),
                                        nd.get("width", DEFAULT_NOTE_W),
                                        nd.get("height", DEFAULT_NOTE_H),
                                        style=style, note_id=want(nd.get("id")))
            except ValueError:
                continue
            if nd.get("id"):
                id_map[nd["id"]] = note.id

        for gd in d.get("groups", []):
            children = [id_map[c] for c in gd.get("child_node_ids", []) if c in id_map]
            rect = Rect(float(gd.get("x", 0.0)) + shift.x, float(gd.get("y", 0.0)) + shift.y,
                        gd.get("width", GROUP_MIN_W), gd.get("height", GROUP_MIN_H))
            group = self.create_group(children, gd.get("title", "Group"),
                                      group_id=want(gd.get("id")), rect=rect)
            if group is not None and gd.get("id"):
                id_map[gd["id"]] = group.id

        return id_map

    def load(self, d: dict) -> dict[str, str]:
        """Replace the whole graph with a saved one (ids kept where possible)."""
        self.clear()
        return self.merge(d)

    @staticmethod
    def from_dict(d: dict) -> "GraphModel":
        g = GraphModel()
        g.merge(d)
        return g
