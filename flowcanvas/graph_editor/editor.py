"""DiagramEditor: wires the core components together.

Owns one GraphModel, SelectionSet, Viewport and InteractionController plus
the history and clipboard consumers, and exposes the editor-level commands
(drop from palette, delete, copy/paste, undo/redo, group, frame) that the
window binds to toolbar buttons and shortcuts.  No Qt here.
"""

from __future__ import annotations

from typing import Optional

from .geometry import Point, bounding_rect
from .graph_model import GraphModel, EntityKind, NodeDefinition, get_definition
from .interaction import InteractionController
from .selection import SelectionSet
from .viewport import Viewport, ViewState
from ..clipboard import GraphClipboard
from ..undo import UndoStack, capture_graph, restore_graph


class DiagramEditor:
    def __init__(self, settings=None, model: Optional[GraphModel] = None):
        self.model = model or GraphModel()
        self.selection = SelectionSet(self.model)

        state = ViewState()
        history_size, paste_offset, sensitivity = 50, 20, 0.001
        if settings is not None:
            state.grid_size = settings.grid_size
            state.snap_to_grid = settings.snap_to_grid
            state.show_grid = settings.show_grid
            state.min_scale = settings.min_scale
            state.max_scale = settings.max_scale
            history_size = settings.history_size
            paste_offset = settings.paste_offset
            sensitivity = settings.zoom_sensitivity
        self.viewport = Viewport(state, zoom_sensitivity=sensitivity)
        self.interaction = InteractionController(self.model, self.selection, self.viewport)
        self.undo_stack = UndoStack(max_size=history_size)
        self.clipboard = GraphClipboard(paste_offset=paste_offset)
        self._restoring = False

        self.interaction.on_interaction_finished(lambda _mode: self.checkpoint())
        self.checkpoint()

    # -- History --

    def checkpoint(self) -> None:
        """Record the current graph as a history step."""
        if self._restoring:
            return
        self.undo_stack.push(capture_graph(self.model))

    def _restore(self, snapshot: Optional[dict]) -> bool:
        if snapshot is None:
            return False
        self._restoring = True
        try:
            restore_graph(self.model, snapshot, self.selection)
        finally:
            self._restoring = False
        return True

    def undo(self) -> bool:
        self.interaction.cancel()
        return self._restore(self.undo_stack.undo())

    def redo(self) -> bool:
        self.interaction.cancel()
        return self._restore(self.undo_stack.redo())

    # -- Creation --

    def drop_definition(self, definition_id: str, client: Point):
        """Create a node where a palette item was dropped (client coords)."""
        definition = get_definition(definition_id)
        if definition is None:
            raise KeyError(f"unknown node definition {definition_id!r}")
        return self.add_node(definition, self.viewport.client_to_canvas(client))

    def add_node(self, definition: NodeDefinition, world: Optional[Point] = None):
        if world is None:
            world = self._view_centre()
        node = self.model.create_node(definition, self.viewport.snap_point(world))
        self.selection.select(node.id)
        self.checkpoint()
        return node

    def add_note(self, world: Optional[Point] = None, content: str = "New Note"):
        if world is None:
            world = self._view_centre()
        note = self.model.create_note(self.viewport.snap_point(world), content)
        self.selection.select(note.id)
        self.checkpoint()
        return note

    def _view_centre(self) -> Point:
        return self.viewport.client_to_canvas(
            Point(self.viewport.surface_w / 2, self.viewport.surface_h / 2))

    # -- Selection commands --

    def select_all(self) -> None:
        self.selection.select_many([n.id for n in self.model.nodes] +
                                   [n.id for n in self.model.notes])

    def selected_entity(self):
        """(kind, entity) for a single selection, else None."""
        sid = self.selection.single()
        return self.model.get_entity(sid) if sid is not None else None

    def delete_selection(self) -> int:
        n = self.model.delete_items(self.selection.ids)
        if n:
            self.checkpoint()
        return n

    def group_selection(self, title: str = "New Group"):
        node_ids = [i for i in self.selection if self.model.get_node(i) is not None]
        group = self.model.create_group(node_ids, title)
        if group is not None:
            self.selection.select(group.id)
            self.checkpoint()
        return group

    def ungroup(self) -> int:
        groups = [i for i in self.selection if self.model.get_group(i) is not None]
        for gid in groups:
            self.model.delete_group(gid)
        if groups:
            self.checkpoint()
        return len(groups)

    # -- Clipboard --

    def copy(self) -> int:
        return self.clipboard.copy(self.model, self.selection.ids)

    def cut(self) -> int:
        n = self.copy()
        if n:
            self.delete_selection()
        return n

    def paste(self, client: Optional[Point] = None) -> list[str]:
        at = self.viewport.client_to_canvas(client) if client is not None else None
        ids = self.clipboard.paste(self.model, at)
        if ids:
            self.selection.select_many(ids)
            self.checkpoint()
        return ids

    # -- View --

    def frame_all(self) -> bool:
        return self.viewport.zoom_to_fit(self.model.content_rect())

    def frame_selection(self) -> bool:
        rects = [r for r in (self.model.item_rect(i) for i in self.selection) if r is not None]
        return self.viewport.zoom_to_fit(bounding_rect(rects))

    # -- Persistence --

    def to_dict(self) -> dict:
        return self.model.to_dict(self.viewport.state.to_dict())

    def load(self, d: dict) -> None:
        """Replace the graph with a saved one; history restarts from it."""
        self.interaction.cancel()
        self.selection.clear()
        self.model.load(d)
        vs = d.get("viewState")
        if vs:
            self.viewport.restore(ViewState.from_dict(vs))
        self.undo_stack.clear()
        self.checkpoint()
        print(f"[Editor] Loaded {len(self.model.nodes)} nodes, "
              f"{len(self.model.connections)} connections, {len(self.model.notes)} notes")

    def describe_selection(self) -> str:
        found = self.selected_entity()
        if found is None:
            n = len(self.selection)
            return f"{n} selected" if n else ""
        kind, entity = found
        if kind is EntityKind.NODE:
            return f"Node: {entity.title}"
        if kind is EntityKind.NOTE:
            return f"Note: {entity.content[:30]}"
        if kind is EntityKind.GROUP:
            return f"Group: {entity.title}"
        if kind is EntityKind.CONNECTION:
            return f"Connection {entity.label}".rstrip()
        return kind.value
