#!/usr/bin/env python3
"""flowcanvas - Node Diagram Editor.

An interactive canvas for building node graphs: drag nodes from the
palette, wire ports together, annotate with sticky notes and groups.
Built with PySide6.

Usage:
    python main.py [--settings PATH] [--open FILE]     # from project root
    python -m flowcanvas.main [--settings PATH] [--open FILE]
"""
import sys
from pathlib import Path

# Ensure the project root (this file's directory) is on sys.path so that
# `import flowcanvas` works regardless of how the script is invoked.
_root = str(Path(__file__).resolve().parent)
if _root not in sys.path:
    sys.path.insert(0, _root)

from flowcanvas.main import main


if __name__ == '__main__':
    main()
