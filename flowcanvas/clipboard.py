"""Clipboard for the diagram editor.

Copies nodes and sticky notes (plus the connections running between copied
nodes) as plain dicts, and pastes them back through GraphModel.merge so each
entity gets a fresh id and passes the same validation as a new one.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .graph_editor.geometry import Point
from .graph_editor.graph_model import (
    GraphModel, node_to_dict, note_to_dict, connection_to_dict,
)

PASTE_OFFSET = 20


@dataclass
class ClipboardData:
    nodes: List[dict]
    notes: List[dict]
    connections: List[dict]
    origin: Point    # top-left of the copied items, for relative placement


class GraphClipboard:
    def __init__(self, paste_offset: float = PASTE_OFFSET):
        self.data: Optional[ClipboardData] = None
        self.paste_offset = paste_offset
        self._paste_count = 0

    def has_data(self) -> bool:
        return self.data is not None

    def copy(self, model: GraphModel, ids: Iterable[str]) -> int:
        """Copy the nodes / notes among ids.  Returns how many items were copied.

        Selected groups contribute their child nodes.
        """
        ids = list(ids)
        node_ids = []
        for i in ids:
            group = model.get_group(i)
            if group is not None:
                node_ids.extend(group.child_node_ids)
            elif model.get_node(i) is not None:
                node_ids.append(i)
        node_ids = list(dict.fromkeys(node_ids))
        nodes = [model.get_node(i) for i in node_ids]
        notes = [n for n in (model.get_note(i) for i in ids) if n is not None]
        if not nodes and not notes:
            return 0

        copied = set(node_ids)
        conns = [c for c in model.connections
                 if c.source_node_id in copied and c.target_node_id in copied]

        positions = [n.position for n in nodes] + [n.position for n in notes]
        origin = Point(min(p.x for p in positions), min(p.y for p in positions))

        self.data = ClipboardData(
            nodes=[node_to_dict(n) for n in nodes],
            notes=[note_to_dict(n) for n in notes],
            connections=[connection_to_dict(c) for c in conns],
            origin=origin,
        )
        self._paste_count = 0
        print(f"[CLIPBOARD] Copied {len(nodes)} nodes, {len(notes)} notes, {len(conns)} connections")
        return len(nodes) + len(notes)

    def paste(self, model: GraphModel, at: Optional[Point] = None) -> List[str]:
        """Paste at a world point (top-left of the copied block).

        Without a point each paste lands paste_offset further down-right of
        the originals.  Returns the ids of the new nodes and notes.
        """
        if not self.data:
            print("[CLIPBOARD] Nothing to paste")
            return []
        if at is None:
            self._paste_count += 1
            step = self.paste_offset * self._paste_count
            shift = Point(step, step)
        else:
            shift = at - self.data.origin

        id_map = model.merge({
            "nodes": self.data.nodes,
            "connections": self.data.connections,
            "stickyNotes": self.data.notes,
        }, shift=shift, keep_ids=False)

        new_ids = [id_map[d["id"]] for d in self.data.nodes + self.data.notes if d["id"] in id_map]
        print(f"[CLIPBOARD] Pasted {len(new_ids)} items")
        return new_ids
