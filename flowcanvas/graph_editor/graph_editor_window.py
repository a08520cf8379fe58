"""Diagram editor window.

Layout:
  ┌─────────────────────────────────────────────────────────────────┐
  │ [Add Node ▾] [Note] [Group] [Frame All] [Reset] [Snap]  status  │
  │                                  [Undo] [Redo] [Save] [Load]    │  ← toolbar
  ├──────────┬──────────────────────────────────────────────────────┤
  │ palette  │                                                      │
  │ (drag    │              NodeGraphCanvas                         │
  │  onto    │                                                      │
  │  canvas) │                                                      │
  └──────────┴──────────────────────────────────────────────────────┘

Add Node dropdown and the palette are both built from BUILTIN_DEFINITIONS,
grouped by category.
"""

from __future__ import annotations

from typing import Optional

from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QMenu, QToolButton,
    QLabel, QFrame, QFileDialog, QMessageBox, QListWidget, QListWidgetItem,
    QAbstractItemView,
)
from PySide6.QtCore import Qt, QPoint, QMimeData, QTimer
from PySide6.QtGui import QKeySequence, QShortcut

from .editor import DiagramEditor
from .geometry import Point
from .graph_model import BUILTIN_DEFINITIONS, NodeDefinition
from .hit_test import Hit, HitKind
from .node_canvas import NodeGraphCanvas, MIME_DEFINITION
from ..ops.project_io import save_graph, read_graph


# ---------------------------------------------------------------------------
# Palette
# ---------------------------------------------------------------------------

class DefinitionPalette(QListWidget):
    """Drag source listing node definitions; drops carry the definition id."""

    def __init__(self, definitions, parent=None):
        super().__init__(parent)
        self.setDragEnabled(True)
        self.setSelectionMode(QAbstractItemView.SingleSelection)
        self.setFixedWidth(150)
        category = None
        for d in sorted(definitions, key=lambda d: d.category):
            if d.category != category:
                category = d.category
                header = QListWidgetItem(category)
                header.setFlags(Qt.NoItemFlags)
                self.addItem(header)
            item = QListWidgetItem(f"  {d.title}")
            item.setData(Qt.UserRole, d.id)
            self.addItem(item)

    def mimeData(self, items):
        mime = QMimeData()
        if items:
            def_id = items[0].data(Qt.UserRole)
            if def_id:
                mime.setData(MIME_DEFINITION, def_id.encode("utf-8"))
        return mime

    def mimeTypes(self):
        return [MIME_DEFINITION]


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------

class GraphEditorWindow(QWidget):
    """Top-level diagram editor.

    Parameters
    ----------
    settings   Settings instance (grid, zoom limits, history depth, last file).
    """

    def __init__(self, settings=None, parent=None):
        super().__init__(parent, Qt.Window)
        self.setWindowTitle("flowcanvas")
        self.resize(1200, 760)

        self.settings = settings
        self.editor = DiagramEditor(settings)
        self._path: Optional[str] = None

        self._build_ui()
        self._install_shortcuts()
        self._refresh_history_buttons()

        # history is checkpointed after the change that triggers this
        self.editor.model.on_change(
            lambda _kind: QTimer.singleShot(0, self._refresh_history_buttons))

        self.setStyleSheet("""
            QWidget { background-color: #16213e; color: #eeeeee; }
            QPushButton, QToolButton {
                background-color: #1a1a2e; color: #eeeeee;
                border: 1px solid #2a3a5c; border-radius: 4px;
                padding: 3px 8px;
            }
            QPushButton:hover, QToolButton:hover { background-color: #2a3a5c; }
            QPushButton:checked { background-color: #3a7bd5; }
            QPushButton:disabled { color: #555; border-color: #333; }
            QMenu { background: #1a2236; color: #eee; border: 1px solid #2a3a5c; }
            QMenu::item:selected { background: #3a7bd5; }
            QListWidget { background: #1a2236; border: 1px solid #2a3a5c; }
            QLabel { background: transparent; }
        """)

    # -----------------------------------------------------------------------
    # UI construction
    # -----------------------------------------------------------------------

    def _build_ui(self) -> None:
        outer = QVBoxLayout(self)
        outer.setContentsMargins(6, 6, 6, 6)
        outer.setSpacing(4)

        self._canvas = NodeGraphCanvas(self.editor, self)
        self._canvas.selection_changed.connect(self._on_selection_changed)
        self._canvas.context_requested.connect(self._on_context_requested)

        toolbar = QHBoxLayout()
        toolbar.setSpacing(6)

        self._add_btn = QToolButton()
        self._add_btn.setText("＋ Add Node  ▾")
        self._add_btn.setPopupMode(QToolButton.InstantPopup)
        self._add_btn.setMenu(self._build_add_menu())
        toolbar.addWidget(self._add_btn)

        note_btn = QPushButton("Note")
        note_btn.clicked.connect(lambda: self.editor.add_note())
        toolbar.addWidget(note_btn)

        group_btn = QPushButton("Group")
        group_btn.setToolTip("Group selected nodes  [Ctrl+G]")
        group_btn.clicked.connect(lambda: self.editor.group_selection())
        toolbar.addWidget(group_btn)

        toolbar.addSpacing(8)

        frame_btn = QPushButton("Frame All")
        frame_btn.setToolTip("Zoom to fit everything  [F]")
        frame_btn.clicked.connect(self.editor.frame_all)
        toolbar.addWidget(frame_btn)

        reset_btn = QPushButton("Reset View")
        reset_btn.clicked.connect(self.editor.viewport.reset_view)
        toolbar.addWidget(reset_btn)

        self._snap_btn = QPushButton("Snap")
        self._snap_btn.setCheckable(True)
        self._snap_btn.setChecked(self.editor.viewport.state.snap_to_grid)
        self._snap_btn.toggled.connect(self._on_snap_toggled)
        toolbar.addWidget(self._snap_btn)

        toolbar.addStretch()

        self._status_lbl = QLabel("")
        self._status_lbl.setStyleSheet("color: #888; font-size: 10px;")
        toolbar.addWidget(self._status_lbl)

        toolbar.addSpacing(12)

        self._undo_btn = QPushButton("Undo")
        self._undo_btn.clicked.connect(self._on_undo)
        toolbar.addWidget(self._undo_btn)

        self._redo_btn = QPushButton("Redo")
        self._redo_btn.clicked.connect(self._on_redo)
        toolbar.addWidget(self._redo_btn)

        save_btn = QPushButton("Save")
        save_btn.clicked.connect(self._save_graph)
        toolbar.addWidget(save_btn)

        load_btn = QPushButton("Load")
        load_btn.clicked.connect(self._load_graph)
        toolbar.addWidget(load_btn)

        outer.addLayout(toolbar)

        sep = QFrame()
        sep.setFrameShape(QFrame.HLine)
        sep.setStyleSheet("color: #2a3a5c;")
        outer.addWidget(sep)

        body = QHBoxLayout()
        body.setSpacing(4)
        body.addWidget(DefinitionPalette(BUILTIN_DEFINITIONS, self))
        body.addWidget(self._canvas, 1)
        outer.addLayout(body, 1)

    def _build_add_menu(self, at: Optional[Point] = None) -> QMenu:
        """Definitions grouped by category; `at` is a client point for context menus."""
        menu = QMenu(self)
        submenus = {}
        for d in BUILTIN_DEFINITIONS:
            sub = submenus.get(d.category)
            if sub is None:
                sub = submenus[d.category] = menu.addMenu(d.category)
            sub.addAction(d.title).triggered.connect(
                lambda _checked=False, d=d: self._add_node(d, at))
        return menu

    def _install_shortcuts(self) -> None:
        QShortcut(QKeySequence.Copy, self, self.editor.copy)
        QShortcut(QKeySequence.Cut, self, self.editor.cut)
        QShortcut(QKeySequence.Paste, self, lambda: self.editor.paste())
        QShortcut(QKeySequence.SelectAll, self, self.editor.select_all)
        QShortcut(QKeySequence.Undo, self, self._on_undo)
        QShortcut(QKeySequence.Redo, self, self._on_redo)
        QShortcut(QKeySequence('Ctrl+Shift+Z'), self, self._on_redo)
        QShortcut(QKeySequence('Ctrl+G'), self, lambda: self.editor.group_selection())
        QShortcut(QKeySequence('Ctrl+Shift+G'), self, self.editor.ungroup)
        QShortcut(QKeySequence.Save, self, self._save_graph)
        QShortcut(QKeySequence.Open, self, self._load_graph)

    # -----------------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------------

    def _add_node(self, definition: NodeDefinition, at: Optional[Point] = None) -> None:
        world = self.editor.viewport.client_to_canvas(at) if at is not None else None
        self.editor.add_node(definition, world)

    def _on_snap_toggled(self, on: bool) -> None:
        self.editor.viewport.set_grid(snap=on)
        if self.settings is not None:
            self.settings.snap_to_grid = on
            self.settings.save()

    def _on_undo(self) -> None:
        self.editor.undo()
        self._refresh_history_buttons()

    def _on_redo(self) -> None:
        self.editor.redo()
        self._refresh_history_buttons()

    def _refresh_history_buttons(self) -> None:
        self._undo_btn.setEnabled(self.editor.undo_stack.can_undo())
        self._redo_btn.setEnabled(self.editor.undo_stack.can_redo())

    def _on_selection_changed(self, ids: list) -> None:
        self._status_lbl.setText(self.editor.describe_selection())
        self._status_lbl.setStyleSheet("color: #888; font-size: 10px;")

    def _on_context_requested(self, hit: Hit, global_pos: QPoint) -> None:
        menu = QMenu(self)
        local = self._canvas.mapFromGlobal(global_pos)
        client = Point(local.x(), local.y())

        if hit.kind in (HitKind.NODE, HitKind.NOTE, HitKind.CONNECTION, HitKind.GROUP):
            if hit.entity_id not in self.editor.selection:
                self.editor.selection.select(hit.entity_id)
            if hit.kind is HitKind.GROUP:
                menu.addAction("Ungroup").triggered.connect(self.editor.ungroup)
            if hit.kind in (HitKind.NODE, HitKind.NOTE):
                menu.addAction("Copy").triggered.connect(self.editor.copy)
            menu.addAction("Delete").triggered.connect(self.editor.delete_selection)
        elif hit.kind is HitKind.BACKGROUND:
            add_menu = self._build_add_menu(client)
            add_menu.setTitle("Add Node")
            menu.addMenu(add_menu)
            menu.addAction("Add Note").triggered.connect(
                lambda: self.editor.add_note(self.editor.viewport.client_to_canvas(client)))
            paste = menu.addAction("Paste Here")
            paste.setEnabled(self.editor.clipboard.has_data())
            paste.triggered.connect(lambda: self.editor.paste(client))

        if not menu.isEmpty():
            menu.exec(global_pos)

    # -----------------------------------------------------------------------
    # Save / load graph
    # -----------------------------------------------------------------------

    def _save_graph(self) -> None:
        path, _ = QFileDialog.getSaveFileName(
            self, "Save Diagram", self._path or "", "Diagram JSON (*.flow.json *.json)")
        if not path:
            return
        try:
            save_graph(self.editor.model, path, self.editor.viewport.state.to_dict())
        except OSError as e:
            QMessageBox.warning(self, "Save failed", str(e))
            return
        self._remember_path(path)
        self._status_lbl.setText("Saved")
        self._status_lbl.setStyleSheet("color: #6bcb77; font-size: 10px;")

    def _load_graph(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Load Diagram", self._path or "", "Diagram JSON (*.flow.json *.json)")
        if path:
            self.open_file(path)

    def open_file(self, path: str) -> bool:
        try:
            data = read_graph(path)
        except (OSError, ValueError) as e:
            QMessageBox.warning(self, "Load failed", str(e))
            return False
        self.editor.load(data)
        if not data.get("viewState"):
            QTimer.singleShot(50, self.editor.frame_all)
        self._remember_path(path)
        self._refresh_history_buttons()
        return True

    def _remember_path(self, path: str) -> None:
        self._path = path
        self.setWindowTitle(f"flowcanvas - {path}")
        if self.settings is not None:
            self.settings.last_file = path
            self.settings.save()
