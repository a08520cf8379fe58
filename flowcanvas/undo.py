"""Undo/redo for the diagram editor.

Snapshots are GraphModel.to_dict() payloads.  Restoring goes back through
GraphModel.load, so every entity is re-created by the validated constructors
and ids survive the round trip.
"""

from typing import Optional

from .graph_editor.graph_model import GraphModel


class UndoStack:
    """Bounded list of snapshots with a cursor."""

    def __init__(self, max_size: int = 50):
        self.max_size = max_size
        self.stack = []
        self.pointer = -1  # -1 = empty

    def can_undo(self) -> bool:
        return self.pointer > 0

    def can_redo(self) -> bool:
        return self.pointer < len(self.stack) - 1

    def push(self, snapshot: dict):
        """Record a new state; anything ahead of the cursor is discarded."""
        self.stack = self.stack[:self.pointer + 1]
        self.stack.append(snapshot)
        if len(self.stack) > self.max_size:
            self.stack.pop(0)
        else:
            self.pointer += 1

    def undo(self) -> Optional[dict]:
        if not self.can_undo():
            return None
        self.pointer -= 1
        return self.stack[self.pointer]

    def redo(self) -> Optional[dict]:
        if not self.can_redo():
            return None
        self.pointer += 1
        return self.stack[self.pointer]

    def clear(self):
        self.stack = []
        self.pointer = -1


def capture_graph(model: GraphModel) -> dict:
    """Snapshot of the graph only; selection and view are not part of history."""
    snap = model.to_dict()
    snap.pop("viewState", None)
    return snap


def restore_graph(model: GraphModel, snapshot: dict, selection=None):
    """Rebuild the graph from a snapshot.

    The selection is carried over, minus ids the snapshot no longer has.
    """
    keep = selection.ids if selection is not None else []
    model.load(snapshot)
    if selection is not None:
        selection.select_many([i for i in keep if model.has(i)])
