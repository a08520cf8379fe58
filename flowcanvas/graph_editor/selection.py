"""Selection set for the diagram canvas.

Ordered set of entity ids of any kind.  When bound to a GraphModel it prunes
ids synchronously as entities are deleted, so it never references a dead id.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from .graph_model import GraphModel, EntityKind


class SelectionSet:
    def __init__(self, model: Optional[GraphModel] = None):
        self._ids: dict[str, None] = {}      # dict as an insertion-ordered set
        self._listeners: list[Callable[[list[str]], None]] = []
        if model is not None:
            model.on_entity_deleted(self._on_entity_deleted)

    def on_selection_changed(self, callback: Callable[[list[str]], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        ids = self.ids
        for cb in list(self._listeners):
            cb(ids)

    def _on_entity_deleted(self, kind: EntityKind, entity_id: str) -> None:
        if entity_id in self._ids:
            del self._ids[entity_id]
            self._notify()

    # -- Queries --

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(list(self._ids))

    def single(self) -> Optional[str]:
        """The selected id when exactly one is selected."""
        return next(iter(self._ids)) if len(self._ids) == 1 else None

    # -- Mutation --

    def select(self, entity_id: str, additive: bool = False) -> None:
        if not additive:
            if list(self._ids) == [entity_id]:
                return
            self._ids.clear()
        elif entity_id in self._ids:
            return
        self._ids[entity_id] = None
        self._notify()

    def select_many(self, ids: Iterable[str], additive: bool = False) -> None:
        new = list(dict.fromkeys(ids))
        if not additive:
            if new == list(self._ids):
                return
            self._ids = dict.fromkeys(new)
        else:
            before = len(self._ids)
            for i in new:
                self._ids[i] = None
            if len(self._ids) == before:
                return
        self._notify()

    def toggle(self, entity_id: str) -> None:
        if entity_id in self._ids:
            del self._ids[entity_id]
        else:
            self._ids[entity_id] = None
        self._notify()

    def deselect(self, entity_id: str) -> None:
        if entity_id in self._ids:
            del self._ids[entity_id]
            self._notify()

    def retain(self, predicate: Callable[[str], bool]) -> None:
        """Drop every id for which predicate is False (used after undo/redo)."""
        keep = {i: None for i in self._ids if predicate(i)}
        if len(keep) != len(self._ids):
            self._ids = keep
            self._notify()

    def clear(self) -> None:
        if self._ids:
            self._ids.clear()
            self._notify()
