"""Node graph canvas widget.

A QWidget that paints a DiagramEditor's graph and forwards Qt input to its
InteractionController.  All hit-testing, selection and mutation live in the
pure core; this widget only:
  - translates QMouseEvent / QWheelEvent into PointerEvent / WheelEvent
  - paints groups, connections, nodes, notes (reverse of hit priority)
  - maps cursor hints to Qt cursors
  - accepts palette drops (mime type MIME_DEFINITION carrying a definition id)

Coordinate spaces:
  world  – canvas coordinates stored on nodes / notes / groups
  client – widget pixels; the painter maps world -> client with
           translate(offset) then scale(scale), matching Viewport.
"""

from __future__ import annotations

from typing import Optional

from PySide6.QtWidgets import QWidget, QSizePolicy
from PySide6.QtCore import Qt, QPointF, QRectF, QPoint, Signal
from PySide6.QtGui import (
    QPainter, QPen, QBrush, QColor, QPainterPath, QFont,
    QMouseEvent, QWheelEvent, QKeyEvent, QCursor,
)

from .editor import DiagramEditor
from .geometry import (
    Point, wire_controls, resize_handle_points,
    NODE_HEADER_H, GROUP_HEADER_H, PORT_R, PORT_SPACING, RESIZE_HANDLE_SIZE,
    RECONNECT_HANDLE_RADIUS,
)
from .graph_model import Node, PortDirection, port_position
from .hit_test import Hit, HitKind, connection_endpoints
from .interaction import Button, Modifiers, PointerEvent, WheelEvent, PendingConnection
from .viewport import RenderScheduler, ViewState


MIME_DEFINITION = "application/x-flowcanvas-definition"


# ---------------------------------------------------------------------------
# Visual constants
# ---------------------------------------------------------------------------

C_BG            = QColor("#0d1117")
C_GRID          = QColor("#1c2333")
C_NODE_BG       = QColor("#1a2236")
C_NODE_BORDER   = QColor("#2a3a5c")
C_NODE_SEL      = QColor("#3a7bd5")
C_PORT_IN       = QColor("#6bcb77")
C_PORT_OUT      = QColor("#4d96ff")
C_PORT_HOVER    = QColor("#ffffff")
C_PORT_OK       = QColor("#f9ca24")
C_WIRE          = QColor("#4d96ff")
C_WIRE_SEL      = QColor("#f9ca24")
C_WIRE_PREVIEW  = QColor("#aaaaaa")
C_WIRE_RECONNECT = QColor("#e67e22")
C_GROUP_BG      = QColor(58, 123, 213, 25)
C_GROUP_HEADER  = QColor(58, 123, 213, 70)
C_MARQUEE_FILL  = QColor(61, 122, 213, 40)
C_MARQUEE_LINE  = QColor("#3a7bd5")
C_HANDLE        = QColor("#ffffff")
C_TEXT          = QColor("#e6e6e6")
C_TEXT_DIM      = QColor("#888888")

_CURSORS = {
    "default":     Qt.ArrowCursor,
    "pointer":     Qt.PointingHandCursor,
    "move":        Qt.SizeAllCursor,
    "grabbing":    Qt.ClosedHandCursor,
    "crosshair":   Qt.CrossCursor,
    "nwse-resize": Qt.SizeFDiagCursor,
    "nesw-resize": Qt.SizeBDiagCursor,
    "ns-resize":   Qt.SizeVerCursor,
    "ew-resize":   Qt.SizeHorCursor,
}


# ---------------------------------------------------------------------------
# Node graph canvas
# ---------------------------------------------------------------------------

class NodeGraphCanvas(QWidget):
    """Interactive diagram canvas.

    Signals:
      selection_changed(list)           – ids now selected
      context_requested(object, QPoint) – (Hit, global_pos) on secondary click
    """

    selection_changed = Signal(list)
    context_requested = Signal(object, QPoint)

    def __init__(self, editor: DiagramEditor, parent=None):
        super().__init__(parent)
        self.editor = editor
        self.setFocusPolicy(Qt.StrongFocus)
        self.setMouseTracking(True)
        self.setAcceptDrops(True)
        self.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Expanding)
        self.setMinimumSize(400, 300)

        self._hover = Hit()
        self._last_client = Point()

        self.scheduler = RenderScheduler(editor.viewport, self.update)
        self.scheduler.on_before_paint(self._paint)

        request = self.scheduler.request_render
        editor.model.on_change(request)
        editor.viewport.on_view_changed(request)
        editor.selection.on_selection_changed(request)
        editor.selection.on_selection_changed(self.selection_changed.emit)

        ia = editor.interaction
        ia.on_connection_preview(request)
        ia.on_box_changed(request)
        ia.on_hover_changed(self._on_hover)
        ia.on_cursor_changed(self._on_cursor)
        ia.on_context_requested(self._on_context)
        ia.on_reconnection_failed(
            lambda conn: print(f"[Canvas] Reconnection failed; restored {conn.id}"))
        editor.model.on_connection_declined(
            lambda reason, src, dst: print(f"[Canvas] Connection declined: {reason.value}"))

    # -----------------------------------------------------------------------
    # Core callbacks
    # -----------------------------------------------------------------------

    def _on_hover(self, hit: Hit) -> None:
        self._hover = hit
        self.scheduler.request_render()

    def _on_cursor(self, name: str) -> None:
        self.setCursor(QCursor(_CURSORS.get(name, Qt.ArrowCursor)))

    def _on_context(self, hit: Hit, client: Point) -> None:
        self.context_requested.emit(hit, self.mapToGlobal(QPoint(int(client.x), int(client.y))))

    # -----------------------------------------------------------------------
    # Event translation
    # -----------------------------------------------------------------------

    @staticmethod
    def _modifiers(event) -> Modifiers:
        m = event.modifiers()
        return Modifiers(
            shift=bool(m & Qt.ShiftModifier),
            ctrl=bool(m & Qt.ControlModifier),
            meta=bool(m & Qt.MetaModifier),
            alt=bool(m & Qt.AltModifier),
        )

    @staticmethod
    def _button(event: QMouseEvent) -> Optional[Button]:
        return {
            Qt.LeftButton: Button.PRIMARY,
            Qt.MiddleButton: Button.MIDDLE,
            Qt.RightButton: Button.SECONDARY,
        }.get(event.button())

    def _pointer(self, event: QMouseEvent, button: Button = Button.PRIMARY) -> PointerEvent:
        pos = event.position()
        self._last_client = Point(pos.x(), pos.y())
        return PointerEvent(self._last_client, button, self._modifiers(event))

    def mousePressEvent(self, event: QMouseEvent) -> None:
        button = self._button(event)
        if button is None:
            return
        self.setFocus()
        self.editor.interaction.pointer_down(self._pointer(event, button))

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        self.editor.interaction.pointer_move(self._pointer(event))

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        button = self._button(event)
        if button is Button.SECONDARY:
            return
        self.editor.interaction.pointer_up(self._pointer(event, button or Button.PRIMARY))

    def leaveEvent(self, event) -> None:
        self.editor.interaction.pointer_leave(PointerEvent(self._last_client))
        super().leaveEvent(event)

    def wheelEvent(self, event: QWheelEvent) -> None:
        pos = event.position()
        # angleDelta is in 1/8 degree; wheel-up should zoom in
        self.editor.interaction.wheel(WheelEvent(-event.angleDelta().y(), Point(pos.x(), pos.y())))

    def resizeEvent(self, event) -> None:
        self.editor.viewport.set_surface_size(self.width(), self.height())
        super().resizeEvent(event)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        if event.key() == Qt.Key_Escape:
            self.editor.interaction.cancel()
        elif event.key() in (Qt.Key_Delete, Qt.Key_Backspace):
            self.editor.delete_selection()
        elif event.key() == Qt.Key_F:
            self.editor.frame_all()
        else:
            super().keyPressEvent(event)

    # -- Palette drops --

    def dragEnterEvent(self, event) -> None:
        if event.mimeData().hasFormat(MIME_DEFINITION):
            event.acceptProposedAction()

    def dragMoveEvent(self, event) -> None:
        if event.mimeData().hasFormat(MIME_DEFINITION):
            event.acceptProposedAction()

    def dropEvent(self, event) -> None:
        data = event.mimeData().data(MIME_DEFINITION)
        def_id = bytes(data).decode("utf-8")
        pos = event.position()
        try:
            self.editor.drop_definition(def_id, Point(pos.x(), pos.y()))
        except KeyError as e:
            print(f"[Canvas] Drop ignored: {e}")
            return
        event.acceptProposedAction()

    # -----------------------------------------------------------------------
    # Painting
    # -----------------------------------------------------------------------

    def paintEvent(self, event):
        painter = QPainter(self)
        try:
            self.scheduler.flush(painter)
        finally:
            painter.end()

    def _paint(self, painter: QPainter, state: ViewState) -> None:
        painter.setRenderHint(QPainter.Antialiasing)
        painter.fillRect(self.rect(), C_BG)
        if state.show_grid:
            self._draw_grid(painter, state)

        painter.save()
        painter.translate(state.offset.x, state.offset.y)
        painter.scale(state.scale, state.scale)

        self._draw_groups(painter)
        self._draw_connections(painter)
        self._draw_nodes(painter)
        self._draw_notes(painter)
        self._draw_pending(painter)
        self._draw_handles(painter, state)
        self._draw_marquee(painter, state)

        painter.restore()

    def _draw_grid(self, painter: QPainter, state: ViewState) -> None:
        step = state.grid_size * state.scale
        if step < 6:
            return
        painter.setPen(QPen(C_GRID, 1))
        x = state.offset.x % step
        while x < self.width():
            painter.drawLine(int(x), 0, int(x), self.height())
            x += step
        y = state.offset.y % step
        while y < self.height():
            painter.drawLine(0, int(y), self.width(), int(y))
            y += step

    def _draw_groups(self, painter: QPainter) -> None:
        sel = self.editor.selection
        font = QFont("Segoe UI", 9)
        font.setBold(True)
        painter.setFont(font)
        for group in self.editor.model.groups:
            r = _qrect(group.rect)
            painter.setPen(QPen(C_NODE_SEL if group.id in sel else C_NODE_BORDER,
                                2.0 if group.id in sel else 1.0, Qt.DashLine))
            painter.setBrush(QBrush(C_GROUP_BG))
            painter.drawRoundedRect(r, 8, 8)
            header = QRectF(r.left(), r.top(), r.width(), GROUP_HEADER_H)
            painter.fillRect(header, C_GROUP_HEADER)
            painter.setPen(QPen(C_TEXT))
            painter.drawText(header.adjusted(10, 0, -10, 0),
                             Qt.AlignVCenter | Qt.AlignLeft, group.title)

    def _draw_connections(self, painter: QPainter) -> None:
        model, sel = self.editor.model, self.editor.selection
        hover_id = self._hover.entity_id if self._hover.kind is HitKind.CONNECTION else None
        painter.setFont(QFont("Segoe UI", 7))
        for conn in model.connections:
            ends = connection_endpoints(model, conn)
            if ends is None:
                continue
            p0, p1 = ends
            is_sel = conn.id in sel
            col = C_WIRE_SEL if is_sel else C_WIRE
            if conn.id == hover_id:
                col = col.lighter(140)
            painter.setPen(QPen(col, 3.0 if is_sel else 2.0))
            painter.setBrush(Qt.NoBrush)
            painter.drawPath(_bezier_path(p0, p1))
            if conn.label:
                mid = QPointF((p0.x + p1.x) / 2, (p0.y + p1.y) / 2)
                painter.setPen(QPen(C_TEXT_DIM))
                painter.drawText(mid + QPointF(4, -4), conn.label)
            if is_sel:
                painter.setBrush(QBrush(C_WIRE_SEL))
                painter.setPen(Qt.NoPen)
                r = RECONNECT_HANDLE_RADIUS / 2
                painter.drawEllipse(QPointF(p0.x, p0.y), r, r)
                painter.drawEllipse(QPointF(p1.x, p1.y), r, r)

    def _draw_nodes(self, painter: QPainter) -> None:
        for node in self.editor.model.nodes:
            self._draw_node(painter, node)

    def _draw_node(self, painter: QPainter, node: Node) -> None:
        r = _qrect(node.rect)
        is_sel = node.id in self.editor.selection

        shadow = QPainterPath()
        shadow.addRoundedRect(r.adjusted(3, 3, 3, 3), 6, 6)
        painter.fillPath(shadow, QColor(0, 0, 0, 60))

        body_path = QPainterPath()
        body_path.addRoundedRect(r, 6, 6)
        painter.fillPath(body_path, C_NODE_BG)

        header_rect = QRectF(r.left(), r.top(), r.width(), NODE_HEADER_H)
        header_path = QPainterPath()
        header_path.addRoundedRect(header_rect, 6, 6)
        header_path.addRect(QRectF(r.left(), r.top() + NODE_HEADER_H / 2,
                                   r.width(), NODE_HEADER_H / 2))
        painter.fillPath(header_path, QColor(node.color))

        painter.setPen(QPen(C_NODE_SEL if is_sel else C_NODE_BORDER, 2.5 if is_sel else 1.0))
        painter.setBrush(Qt.NoBrush)
        painter.drawRoundedRect(r, 6, 6)

        font = QFont("Segoe UI", 9)
        font.setBold(True)
        painter.setFont(font)
        painter.setPen(QPen(C_TEXT))
        painter.drawText(QRectF(r.left() + 8, r.top(), r.width() - 16, NODE_HEADER_H),
                         Qt.AlignVCenter | Qt.AlignLeft, node.title)

        self._draw_ports(painter, node)

    def _draw_ports(self, painter: QPainter, node: Node) -> None:
        pending = self.editor.interaction.pending
        ok_id = pending.compatible_port_id if pending is not None else None
        hover_id = self._hover.port_id if self._hover.kind is HitKind.PORT else None
        label_w = node.width / 2 - PORT_R - 8

        painter.setFont(QFont("Segoe UI", 7))
        for direction in (PortDirection.INPUT, PortDirection.OUTPUT):
            for port in node.visible_ports(direction):
                pos = port_position(node, port)
                if pos is None:
                    continue
                base = C_PORT_OUT if port.is_output else C_PORT_IN
                col = C_PORT_OK if port.id == ok_id else (C_PORT_HOVER if port.id == hover_id else base)
                painter.setBrush(QBrush(col if port.connections or port.id in (ok_id, hover_id)
                                        else C_NODE_BG))
                painter.setPen(QPen(col, 1.5))
                painter.drawEllipse(QPointF(pos.x, pos.y), PORT_R, PORT_R)

                painter.setPen(QPen(C_TEXT_DIM))
                if port.is_output:
                    painter.drawText(QRectF(pos.x - label_w - PORT_R - 4, pos.y - PORT_SPACING / 2,
                                            label_w, PORT_SPACING),
                                     Qt.AlignVCenter | Qt.AlignRight, port.name)
                else:
                    painter.drawText(QRectF(pos.x + PORT_R + 4, pos.y - PORT_SPACING / 2,
                                            label_w, PORT_SPACING),
                                     Qt.AlignVCenter | Qt.AlignLeft, port.name)

    def _draw_notes(self, painter: QPainter) -> None:
        sel = self.editor.selection
        for note in self.editor.model.notes:
            r = _qrect(note.rect)
            painter.setBrush(QBrush(QColor(note.style.background_color)))
            painter.setPen(QPen(C_NODE_SEL if note.id in sel else C_NODE_BORDER,
                                2.0 if note.id in sel else 1.0))
            painter.drawRoundedRect(r, 4, 4)
            font = QFont("Segoe UI")
            font.setPixelSize(max(1, int(note.style.font_size)))
            painter.setFont(font)
            painter.setPen(QPen(QColor(note.style.text_color)))
            painter.drawText(r.adjusted(8, 8, -8, -8),
                             Qt.AlignTop | Qt.AlignLeft | Qt.TextWordWrap, note.content)

    def _draw_pending(self, painter: QPainter) -> None:
        pending: Optional[PendingConnection] = self.editor.interaction.pending
        if pending is None:
            return
        anchor_port = self.editor.model.get_port(pending.anchor_port_id)
        if anchor_port is None:
            return
        if anchor_port.is_output:
            p0, p1 = pending.anchor, pending.current
        else:
            p0, p1 = pending.current, pending.anchor
        col = C_WIRE_RECONNECT if pending.reconnect is not None else C_WIRE_PREVIEW
        painter.setPen(QPen(col, 1.5, Qt.DashLine))
        painter.setBrush(Qt.NoBrush)
        painter.drawPath(_bezier_path(p0, p1))

    def _draw_handles(self, painter: QPainter, state: ViewState) -> None:
        sid = self.editor.selection.single()
        if sid is None:
            return
        item = self.editor.model.get_node(sid) or self.editor.model.get_note(sid)
        if item is None:
            return
        half = RESIZE_HANDLE_SIZE / state.scale / 2
        painter.setBrush(QBrush(C_HANDLE))
        painter.setPen(QPen(C_NODE_SEL, 1.0 / state.scale))
        for _name, p in resize_handle_points(item.rect):
            painter.drawRect(QRectF(p.x - half, p.y - half, half * 2, half * 2))

    def _draw_marquee(self, painter: QPainter, state: ViewState) -> None:
        box = self.editor.interaction.box
        if box is None:
            return
        r = _qrect(box)
        painter.fillRect(r, C_MARQUEE_FILL)
        painter.setPen(QPen(C_MARQUEE_LINE, 1.0 / state.scale, Qt.DashLine))
        painter.setBrush(Qt.NoBrush)
        painter.drawRect(r)


# ---------------------------------------------------------------------------

def _qrect(r) -> QRectF:
    return QRectF(r.x, r.y, r.width, r.height)


def _bezier_path(p0: Point, p1: Point) -> QPainterPath:
    """Same cubic the hit-tester samples (geometry.wire_controls)."""
    c0, c1, c2, c3 = wire_controls(p0, p1)
    path = QPainterPath(QPointF(c0.x, c0.y))
    path.cubicTo(QPointF(c1.x, c1.y), QPointF(c2.x, c2.y), QPointF(c3.x, c3.y))
    return path
