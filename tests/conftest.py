import pytest

from flowcanvas.graph_editor.geometry import Point
from flowcanvas.graph_editor.graph_model import (
    GraphModel, NodeDefinition, PortDef, UNLIMITED,
)
from flowcanvas.graph_editor.selection import SelectionSet
from flowcanvas.graph_editor.viewport import Viewport


DEFINITIONS = {
    # output only, unlimited fan-out
    "source": NodeDefinition(id="source", title="Source", outputs=[PortDef("out")]),
    # single-capacity input, unlimited output
    "sink": NodeDefinition(id="sink", title="Sink",
                           inputs=[PortDef("in")], outputs=[PortDef("out")]),
    # input without a limit
    "collect": NodeDefinition(id="collect", title="Collect",
                              inputs=[PortDef("items", max_connections=UNLIMITED)]),
    # output limited to one connection
    "single": NodeDefinition(id="single", title="Single",
                             outputs=[PortDef("out", max_connections=1)]),
    "multi": NodeDefinition(id="multi", title="Multi",
                            inputs=[PortDef("a"), PortDef("b"), PortDef("c")]),
    "template": NodeDefinition(id="template", title="Template",
                               outputs=[PortDef("text")],
                               defaults={"template": "Hello {{name}}"}),
}


@pytest.fixture
def definitions():
    return DEFINITIONS


@pytest.fixture
def model():
    return GraphModel()


@pytest.fixture
def selection(model):
    return SelectionSet(model)


@pytest.fixture
def viewport():
    vp = Viewport()
    vp.set_surface_size(800, 600)
    return vp


@pytest.fixture
def add(model):
    """add(kind, x, y) -> Node, using the test definitions above."""
    def _add(kind="sink", x=0, y=0):
        return model.create_node(DEFINITIONS[kind], Point(x, y))
    return _add
