"""Graph file save/load.

File format is the persisted graph shape:
    {"nodes": [...], "connections": [...], "stickyNotes": [...],
     "groups": [...], "viewState": {...}}
"""

import json

from ..graph_editor.graph_model import GraphModel


def save_graph(model: GraphModel, path: str, view_state: dict = None):
    """Write the graph (and optionally the view) to a JSON file. Raises on I/O error."""
    with open(path, 'w') as f:
        json.dump(model.to_dict(view_state), f, indent=2)


def read_graph(path: str) -> dict:
    """Parse a graph file without applying it.

    Raises whatever json.load or file I/O raises on bad input, and
    ValueError if the file is not a graph.
    """
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict) or 'nodes' not in data:
        raise ValueError(f"{path} is not a flowcanvas graph file")
    return data


def load_graph(model: GraphModel, path: str) -> dict:
    """Replace the model's contents with a saved graph.

    Returns the saved viewState dict (empty if absent) for the caller to apply.
    """
    data = read_graph(path)
    model.load(data)
    return data.get('viewState') or {}
