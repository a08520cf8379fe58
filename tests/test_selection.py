from flowcanvas.graph_editor.selection import SelectionSet


def test_select_replaces_unless_additive():
    sel = SelectionSet()
    sel.select("a")
    sel.select("b")
    assert sel.ids == ["b"]
    sel.select("c", additive=True)
    assert sel.ids == ["b", "c"]


def test_toggle_and_single():
    sel = SelectionSet()
    sel.toggle("a")
    assert sel.single() == "a"
    sel.toggle("b")
    assert sel.single() is None
    sel.toggle("a")
    assert sel.ids == ["b"]


def test_listener_fires_only_on_change():
    sel = SelectionSet()
    seen = []
    sel.on_selection_changed(seen.append)
    sel.select("a")
    sel.select("a")
    sel.select_many(["a"])
    sel.clear()
    sel.clear()
    assert seen == [["a"], []]


def test_prunes_deleted_entities(model, add):
    sel = SelectionSet(model)
    a, b = add("sink"), add("sink", 300)
    sel.select_many([a.id, b.id])
    model.delete_node(a.id)
    assert sel.ids == [b.id]


def test_prunes_cascaded_connections(model, add):
    sel = SelectionSet(model)
    a, b = add("source"), add("sink", 300)
    conn = model.create_connection(a.fixed_outputs[0].id, b.fixed_inputs[0].id).connection
    sel.select(conn.id)
    model.delete_node(b.id)
    assert len(sel) == 0


def test_retain():
    sel = SelectionSet()
    sel.select_many(["a", "b", "c"])
    sel.retain(lambda i: i != "b")
    assert sel.ids == ["a", "c"]
    assert "b" not in sel
