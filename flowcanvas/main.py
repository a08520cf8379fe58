#!/usr/bin/env python3
"""flowcanvas - Node Diagram Editor.

Usage:
    python -m flowcanvas.main [--settings PATH] [--open FILE]
    python flowcanvas/main.py [--settings PATH] [--open FILE]
"""
import argparse
import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

# Allow running as a script (python flowcanvas/main.py) in addition to
# running as a module (python -m flowcanvas.main).
if not __package__:
    _parent = str(Path(__file__).resolve().parent.parent)
    if _parent not in sys.path:
        sys.path.insert(0, _parent)
    __package__ = "flowcanvas"


def main():
    parser = argparse.ArgumentParser(description='flowcanvas - node diagram editor')
    parser.add_argument('--settings', type=str, default=None,
                        help='Path to settings.json (default ~/.config/flowcanvas/settings.json)')
    parser.add_argument('--open', type=str, default=None, metavar='FILE',
                        help='Diagram file to open at startup')
    args = parser.parse_args()

    app = QApplication(sys.argv)
    app.setStyle('Fusion')

    # Import here so --help works without building any widgets
    from .core.settings import Settings
    from .graph_editor.graph_editor_window import GraphEditorWindow

    settings = Settings(args.settings)
    window = GraphEditorWindow(settings)

    path = args.open or settings.last_file
    if path:
        if Path(path).exists():
            window.open_file(path)
        else:
            print(f"[Editor] {path} not found; starting empty")
    window.show()

    sys.exit(app.exec())


if __name__ == '__main__':
    main()
