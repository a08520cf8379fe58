"""flowcanvas - interactive node diagram editor built with PySide6."""

__version__ = "0.1.0"
