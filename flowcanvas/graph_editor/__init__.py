"""Diagram graph editor package.

Public surface (pure Python, importable without a display):
  GraphModel, Node, Port, Connection, StickyNote, NodeGroup  – graph store
  NodeDefinition, PortDef, BUILTIN_DEFINITIONS               – node catalog
  SelectionSet, Viewport, ViewState, RenderScheduler         – editor state
  hit_test, Hit, HitKind                                     – hit-testing
  InteractionController, PointerEvent, WheelEvent            – input state machine

DiagramEditor (everything wired together) lives in .editor, and the Qt
widgets in .node_canvas (NodeGraphCanvas) and
.graph_editor_window (GraphEditorWindow); import them from there.
"""

from .geometry import Point, Rect
from .graph_model import (
    GraphModel, Node, Port, Connection, StickyNote, NodeGroup, NoteStyle,
    NodeDefinition, PortDef, BUILTIN_DEFINITIONS, get_definition,
    EntityKind, PortDirection, ConnectDecline, ConnectResult, UNLIMITED,
)
from .selection import SelectionSet
from .viewport import Viewport, ViewState, RenderScheduler
from .hit_test import hit_test, Hit, HitKind
from .interaction import (
    InteractionController, Mode, Button, Modifiers, PointerEvent, WheelEvent,
)

__all__ = [
    "Point", "Rect",
    "GraphModel", "Node", "Port", "Connection", "StickyNote", "NodeGroup", "NoteStyle",
    "NodeDefinition", "PortDef", "BUILTIN_DEFINITIONS", "get_definition",
    "EntityKind", "PortDirection", "ConnectDecline", "ConnectResult", "UNLIMITED",
    "SelectionSet", "Viewport", "ViewState", "RenderScheduler",
    "hit_test", "Hit", "HitKind",
    "InteractionController", "Mode", "Button", "Modifiers", "PointerEvent", "WheelEvent",
]
