import pytest

from flowcanvas.core.settings import Settings
from flowcanvas.graph_editor.editor import DiagramEditor
from flowcanvas.graph_editor.geometry import Point
from flowcanvas.graph_editor.graph_model import get_definition
from flowcanvas.graph_editor.interaction import PointerEvent
from flowcanvas.graph_editor.viewport import ViewState


@pytest.fixture
def editor():
    ed = DiagramEditor()
    ed.viewport.set_surface_size(800, 600)
    return ed


def test_drop_converts_client_to_canvas(editor):
    editor.viewport.restore(ViewState(scale=2.0, offset=Point(100, 50)))
    node = editor.drop_definition("action", Point(300, 250))
    assert node.position == Point(100, 100)
    assert editor.selection.ids == [node.id]


def test_drop_unknown_definition(editor):
    with pytest.raises(KeyError):
        editor.drop_definition("nope", Point(0, 0))
    assert editor.model.nodes == []


def test_drop_snaps_when_enabled(editor):
    editor.viewport.set_grid(snap=True)
    node = editor.drop_definition("action", Point(31, 9))
    assert node.position == Point(40, 0)


def test_add_node_defaults_to_view_centre(editor):
    node = editor.add_node(get_definition("trigger"))
    assert node.position == Point(400, 300)


def test_delete_selection(editor):
    a = editor.add_node(get_definition("trigger"), Point(0, 0))
    b = editor.add_node(get_definition("action"), Point(400, 0))
    editor.model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id)
    editor.selection.select(a.id)
    assert editor.delete_selection() == 1
    assert editor.model.connections == []
    assert len(editor.selection) == 0


def test_group_and_ungroup(editor):
    a = editor.add_node(get_definition("trigger"), Point(0, 0))
    b = editor.add_node(get_definition("action"), Point(400, 0))
    editor.selection.select_many([a.id, b.id])
    group = editor.group_selection("Pair")
    assert group.child_node_ids == [a.id, b.id]
    assert editor.selection.ids == [group.id]
    assert editor.ungroup() == 1
    assert editor.model.groups == []
    assert a.group_id is None


def test_cut_and_paste(editor):
    a = editor.add_node(get_definition("trigger"), Point(0, 0))
    editor.selection.select(a.id)
    assert editor.cut() == 1
    assert editor.model.nodes == []
    new_ids = editor.paste(Point(100, 100))
    assert len(new_ids) == 1
    assert editor.model.get_node(new_ids[0]).position == Point(100, 100)
    assert editor.selection.ids == new_ids


def test_frame_all(editor):
    assert not editor.frame_all()
    editor.add_node(get_definition("trigger"), Point(0, 0))
    assert editor.frame_all()
    centre = editor.viewport.canvas_to_client(Point(100, 50))
    assert centre.x == pytest.approx(400)
    assert centre.y == pytest.approx(300)


def test_select_all_and_describe(editor):
    a = editor.add_node(get_definition("trigger"), Point(0, 0))
    editor.add_note(Point(300, 0), "todo")
    editor.selection.select(a.id)
    assert editor.describe_selection() == "Node: Trigger"
    editor.select_all()
    assert editor.describe_selection() == "2 selected"


def test_settings_flow_into_view(tmp_path):
    settings = Settings(tmp_path / "settings.json")
    settings.grid_size = 25
    settings.snap_to_grid = True
    settings.max_scale = 3.0
    ed = DiagramEditor(settings)
    assert ed.viewport.state.grid_size == 25
    assert ed.viewport.snap_grid == 25
    assert ed.viewport.state.max_scale == 3.0


def test_load_resets_history(editor):
    a = editor.add_node(get_definition("trigger"), Point(0, 0))
    saved = editor.to_dict()
    saved["viewState"] = {"scale": 2.0, "offset": {"x": 5, "y": 5}}
    editor.add_node(get_definition("action"), Point(400, 0))
    editor.load(saved)
    assert [n.id for n in editor.model.nodes] == [a.id]
    assert editor.viewport.scale == 2.0
    assert not editor.undo_stack.can_undo()


def test_interaction_finish_records_history(editor):
    node = editor.add_node(get_definition("trigger"), Point(0, 0))
    depth = editor.undo_stack.pointer
    editor.interaction.pointer_down(PointerEvent(Point(100, 80)))
    editor.interaction.pointer_move(PointerEvent(Point(150, 80)))
    editor.interaction.pointer_up(PointerEvent(Point(150, 80)))
    assert editor.undo_stack.pointer == depth + 1
    editor.undo()
    assert editor.model.get_node(node.id).position == Point(0, 0)
