import math

import pytest

from flowcanvas.graph_editor.geometry import Point, Rect
from flowcanvas.graph_editor.graph_model import (
    GraphModel, EntityKind, PortDirection, ConnectDecline,
    get_definition, port_position, min_node_height, clone_node, clone_note,
)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class TestCreateNode:
    def test_fixed_ports_from_definition(self, add):
        node = add("sink")
        assert [p.name for p in node.fixed_inputs] == ["in"]
        assert [p.name for p in node.fixed_outputs] == ["out"]
        assert all(p.node_id == node.id for p in node.all_ports())

    def test_kind_tags(self, model, add):
        node = add("sink")
        assert node.kind is EntityKind.NODE
        assert node.fixed_inputs[0].kind is EntityKind.PORT
        assert model.get_entity(node.id) == (EntityKind.NODE, node)

    def test_capacity_defaults(self, add):
        node = add("sink")
        assert node.fixed_inputs[0].max_connections == 1
        assert node.fixed_outputs[0].max_connections is None
        assert add("collect").fixed_inputs[0].max_connections is None

    def test_non_finite_position_rejected(self, model, definitions):
        with pytest.raises(ValueError):
            model.create_node(definitions["sink"], Point(math.nan, 0))
        assert model.nodes == []

    def test_requested_id_in_use_is_replaced(self, model, definitions, add):
        first = add("sink")
        second = model.create_node(definitions["sink"], Point(), node_id=first.id)
        assert second.id != first.id

    def test_template_defaults_create_variable_port(self, model):
        node = model.create_node(get_definition("template"), Point())
        assert [p.variable_name for p in node.dynamic_inputs] == ["name"]

    def test_update_node_rejects_unknown_field(self, model, add):
        node = add("sink")
        with pytest.raises(ValueError):
            model.update_node(node.id, width=5)


class TestResizeNode:
    def test_clamps_to_port_driven_minimum(self, model, add):
        node = add("multi")
        assert min_node_height(node) == 136
        applied = model.resize_node(node.id, Rect(0, 0, 10, 10))
        assert applied == Rect(0, 0, 80, 136)
        assert node.rect == applied

    def test_snapped_resize_is_idempotent(self, model, add):
        node = add("sink")
        first = model.resize_node(node.id, Rect(3, 7, 213, 151), grid=20)
        assert first == Rect(0, 0, 220, 160)
        second = model.resize_node(node.id, first, grid=20)
        assert second == first

    def test_snapped_minimum_is_whole_cells(self, model, add):
        node = add("sink")
        applied = model.resize_node(node.id, Rect(0, 0, 1, 1), grid=20)
        assert applied == Rect(0, 0, 80, 100)
        assert model.resize_node(node.id, applied, grid=20) == applied

    def test_unknown_node(self, model):
        assert model.resize_node("nope", Rect(0, 0, 100, 100)) is None


class TestDeleteNode:
    def test_cascades_to_connections_and_ports(self, model, add):
        a, b = add("source"), add("sink", 400)
        conn = model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id).connection
        model.delete_node(a.id)
        assert model.get_connection(conn.id) is None
        assert model.get_port(a.fixed_outputs[0].id) is None
        assert b.fixed_inputs[0].connections == []

    def test_emits_deleted_events(self, model, add):
        a, b = add("source"), add("sink", 400)
        conn = model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id).connection
        events = []
        model.on_entity_deleted(lambda kind, eid: events.append((kind, eid)))
        model.delete_node(b.id)
        assert (EntityKind.CONNECTION, conn.id) in events
        assert (EntityKind.NODE, b.id) in events

    def test_leaves_group(self, model, add):
        a, b = add("sink"), add("sink", 300)
        group = model.create_group([a.id, b.id])
        model.delete_node(a.id)
        assert group.child_node_ids == [b.id]


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

class TestConnections:
    def test_create_updates_reverse_index(self, model, add):
        a, b = add("source"), add("sink", 400)
        result = model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id)
        assert result
        assert result.reason is None
        assert a.fixed_outputs[0].connections == [result.connection.id]
        assert b.fixed_inputs[0].connections == [result.connection.id]
        assert result.connection.source_node_id == a.id
        assert result.connection.target_node_id == b.id

    def test_self_connection_declined(self, model, add):
        node = add("sink")
        result = model.create_connection(node.fixed_outputs[0].id, node.fixed_inputs[0].id)
        assert not result
        assert result.reason is ConnectDecline.SELF_CONNECTION
        assert model.connections == []

    def test_output_to_output_declined(self, model, add):
        a, b = add("sink"), add("sink", 400)
        result = model.create_connection(a.fixed_outputs[0].id, b.fixed_outputs[0].id)
        assert result.reason is ConnectDecline.WRONG_DIRECTION
        assert model.connections == []

    def test_input_as_source_declined(self, model, add):
        a, b = add("sink"), add("sink", 400)
        result = model.create_connection(b.fixed_inputs[0].id, a.fixed_outputs[0].id)
        assert result.reason is ConnectDecline.WRONG_DIRECTION

    def test_target_capacity(self, model, add):
        a1, a2, b = add("source"), add("source", 0, 200), add("sink", 400)
        first = model.create_connection(a1.fixed_outputs[0].id, b.fixed_inputs[0].id)
        second = model.create_connection(a2.fixed_outputs[0].id, b.fixed_inputs[0].id)
        assert first
        assert second.reason is ConnectDecline.TARGET_CAPACITY_EXCEEDED
        assert model.connections == [first.connection]

    def test_source_capacity(self, model, add):
        s, b1, b2 = add("single"), add("sink", 400), add("sink", 400, 200)
        assert model.create_connection(s.fixed_outputs[0].id, b1.fixed_inputs[0].id)
        result = model.create_connection(s.fixed_outputs[0].id, b2.fixed_inputs[0].id)
        assert result.reason is ConnectDecline.SOURCE_CAPACITY_EXCEEDED

    def test_duplicate(self, model, add):
        a, c = add("source"), add("collect", 400)
        assert model.create_connection(a.fixed_outputs[0].id, c.fixed_inputs[0].id)
        result = model.create_connection(a.fixed_outputs[0].id, c.fixed_inputs[0].id)
        assert result.reason is ConnectDecline.DUPLICATE
        assert len(model.connections) == 1

    def test_hidden_port(self, model, add):
        a, b = add("source"), add("sink", 400)
        hidden = model.add_port(b.id, PortDirection.INPUT, "x", variable_name="x", hidden=True)
        result = model.create_connection(a.fixed_outputs[0].id, hidden.id)
        assert result.reason is ConnectDecline.HIDDEN_PORT

    def test_missing_port(self, model, add):
        a = add("source")
        result = model.create_connection(a.fixed_outputs[0].id, "missing")
        assert result.reason is ConnectDecline.PORT_NOT_FOUND

    def test_decline_listener(self, model, add):
        node = add("sink")
        seen = []
        model.on_connection_declined(lambda reason, src, dst: seen.append(reason))
        model.create_connection(node.fixed_outputs[0].id, node.fixed_inputs[0].id)
        assert seen == [ConnectDecline.SELF_CONNECTION]

    def test_check_connection_does_not_mutate(self, model, add):
        a, b = add("source"), add("sink", 400)
        assert model.check_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id) is None
        assert model.connections == []

    def test_update_label(self, model, add):
        a, b = add("source"), add("sink", 400)
        conn = model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id).connection
        assert model.update_connection(conn.id, "yes")
        assert conn.label == "yes"

    def test_create_at_index(self, model, add):
        a, c = add("source"), add("collect", 400)
        d = add("source", 0, 200)
        first = model.create_connection(a.fixed_outputs[0].id, c.fixed_inputs[0].id).connection
        below = model.create_connection(d.fixed_outputs[0].id, c.fixed_inputs[0].id,
                                        index=0).connection
        assert model.connections == [below, first]
        assert c.fixed_inputs[0].connections == [below.id, first.id]


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

class TestDynamicPorts:
    def test_variables_follow_node_data(self, model, add):
        a = add("source")
        node = model.create_node(get_definition("template"), Point(400, 0))
        model.update_node_data(node.id, {"template": "{{a}} and {{b}}"})
        assert [p.variable_name for p in node.dynamic_inputs] == ["a", "b"]

        b_port = node.dynamic_inputs[1]
        conn = model.create_connection(a.fixed_outputs[0].id, b_port.id).connection
        model.update_node_data(node.id, {"template": "{{a}}"})
        assert [p.variable_name for p in node.dynamic_inputs] == ["a"]
        assert model.get_connection(conn.id) is None
        assert model.get_port(b_port.id) is None

    def test_fixed_ports_cannot_be_removed(self, model, add):
        node = add("sink")
        assert not model.remove_port(node.fixed_inputs[0].id)
        assert model.get_port(node.fixed_inputs[0].id) is not None

    def test_hidden_ports_take_no_slot(self, model):
        node = model.create_node(get_definition("template"), Point(10, 20))
        name = node.dynamic_inputs[0]
        extra = model.add_port(node.id, PortDirection.INPUT, "extra", variable_name="extra")
        assert port_position(node, name) == Point(10, 72)
        assert port_position(node, extra) == Point(10, 96)

        model.set_port_hidden(name.id, True)
        assert port_position(node, name) is None
        assert port_position(node, extra) == Point(10, 72)

    def test_hiding_drops_connections(self, model, add):
        a = add("source")
        node = model.create_node(get_definition("template"), Point(400, 0))
        port = node.dynamic_inputs[0]
        conn = model.create_connection(a.fixed_outputs[0].id, port.id).connection
        model.set_port_hidden(port.id, True)
        assert model.get_connection(conn.id) is None
        assert a.fixed_outputs[0].connections == []

    def test_add_port_reuses_existing_variable(self, model):
        node = model.create_node(get_definition("template"), Point())
        port = node.dynamic_inputs[0]
        model.set_port_hidden(port.id, True)
        again = model.add_port(node.id, PortDirection.INPUT, "name", variable_name="name")
        assert again is port
        assert not port.is_hidden

    def test_lowering_capacity_drops_newest(self, model, add):
        a1, a2, c = add("source"), add("source", 0, 200), add("collect", 400)
        first = model.create_connection(a1.fixed_outputs[0].id, c.fixed_inputs[0].id).connection
        second = model.create_connection(a2.fixed_outputs[0].id, c.fixed_inputs[0].id).connection
        model.update_port(c.fixed_inputs[0].id, max_connections=1)
        assert model.get_connection(first.id) is first
        assert model.get_connection(second.id) is None


# ---------------------------------------------------------------------------
# Notes and groups
# ---------------------------------------------------------------------------

def test_note_size_is_clamped(model):
    note = model.create_note(Point(0, 0), "hi", width=10, height=10)
    assert (note.width, note.height) == (50, 50)
    applied = model.update_note_rect(note.id, Rect(5, 5, 1, 1))
    assert applied == Rect(5, 5, 50, 50)


def test_note_style_update(model):
    note = model.create_note(Point(0, 0))
    model.update_note(note.id, "text", font_size=40)
    assert note.content == "text"
    assert note.height >= 80
    with pytest.raises(ValueError):
        model.update_note(note.id, colour="red")


class TestGroups:
    def test_frame_wraps_children(self, model, add):
        a, b = add("sink"), add("sink", 300, 100)
        group = model.create_group([a.id, b.id], "G")
        assert group.rect == Rect(-20, -50, 540, 270)
        assert a.group_id == group.id

    def test_move_group_moves_children(self, model, add):
        a = add("sink")
        group = model.create_group([a.id])
        model.move_group(group.id, Point(10, 10))
        assert group.position == Point(-10, -40)
        assert a.position == Point(10, 10)

    def test_delete_group_ungroups(self, model, add):
        a = add("sink")
        group = model.create_group([a.id])
        model.delete_group(group.id)
        assert a.group_id is None
        assert model.get_node(a.id) is a

    def test_delete_group_with_children(self, model, add):
        a = add("sink")
        group = model.create_group([a.id])
        model.delete_group(group.id, delete_children=True)
        assert model.nodes == []

    def test_empty_group_refused(self, model):
        assert model.create_group(["nope"]) is None


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def _populated(model, add):
    a, b = add("source"), add("sink", 400)
    tmpl = model.create_node(get_definition("template"), Point(400, 200))
    model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id, label="go")
    model.create_connection(a.fixed_outputs[0].id, tmpl.dynamic_inputs[0].id)
    model.create_note(Point(0, 300), "remember", style=None)
    model.create_group([b.id, tmpl.id], "Right")
    return model


def test_round_trip_preserves_graph(model, add):
    saved = _populated(model, add).to_dict()
    assert GraphModel.from_dict(saved).to_dict() == saved


def test_dangling_connection_dropped(model, add):
    saved = _populated(model, add).to_dict()
    saved["connections"].append({"id": "x", "source_port_id": "ghost",
                                 "target_port_id": saved["nodes"][1]["fixed_inputs"][0]["id"]})
    restored = GraphModel.from_dict(saved)
    assert len(restored.connections) == 2


def test_over_capacity_connection_dropped(model, add):
    a1, a2, b = add("source"), add("source", 0, 200), add("sink", 400)
    model.create_connection(a1.fixed_outputs[0].id, b.fixed_inputs[0].id)
    saved = model.to_dict()
    saved["connections"].append({"id": "extra",
                                 "source_port_id": a2.fixed_outputs[0].id,
                                 "target_port_id": b.fixed_inputs[0].id})
    restored = GraphModel.from_dict(saved)
    assert len(restored.connections) == 1
    assert restored.get_connection("extra") is None


def test_merge_without_ids_gives_fresh_ids(model, add):
    saved = _populated(model, add).to_dict()
    id_map = model.merge(saved, shift=Point(1000, 0), keep_ids=False)
    assert len(model.nodes) == 6
    assert len(model.connections) == 4
    assert all(old != new for old, new in id_map.items())


def test_load_replaces_contents(model, add):
    add("sink")
    model.load({"nodes": []})
    assert model.nodes == []


def test_remove_dynamic_port_cascades(model, add):
    a, b = add("source"), add("sink", 400)
    port = model.add_port(b.id, PortDirection.INPUT, "extra", variable_name="extra")
    conn = model.create_connection(a.fixed_outputs[0].id, port.id).connection
    assert model.remove_port(port.id)
    assert model.get_connection(conn.id) is None
    assert b.dynamic_inputs == []


def test_clones_are_independent(model, add):
    node = add("sink")
    node.data["k"] = ["v"]
    copy_ = clone_node(node)
    copy_.data["k"].append("w")
    copy_.fixed_inputs[0].name = "renamed"
    assert node.data == {"k": ["v"]}
    assert node.fixed_inputs[0].name == "in"
    assert copy_.id == node.id

    note = model.create_note(Point(0, 0))
    note_copy = clone_note(note)
    note_copy.style.font_size = 30
    assert note.style.font_size == 14
