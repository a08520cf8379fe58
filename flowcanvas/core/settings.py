"""User-facing settings - persisted to ~/.config/flowcanvas/settings.json.

Canvas behaviour (grid, zoom limits and wheel sensitivity) plus editor
preferences (history depth, paste offset, last opened file).
"""

import json
from pathlib import Path

CONFIG_PATH = Path.home() / '.config' / 'flowcanvas' / 'settings.json'

DEFAULTS = {
    'grid_size': 20,
    'snap_to_grid': False,
    'show_grid': True,
    'min_scale': 0.1,
    'max_scale': 5.0,
    'zoom_sensitivity': 0.001,
    'history_size': 50,
    'paste_offset': 20,
    'last_file': '',           # empty string = start with an empty graph
}


class Settings:
    def __init__(self, path=None):
        self.path = Path(path) if path else CONFIG_PATH
        self.grid_size: int = DEFAULTS['grid_size']
        self.snap_to_grid: bool = DEFAULTS['snap_to_grid']
        self.show_grid: bool = DEFAULTS['show_grid']
        self.min_scale: float = DEFAULTS['min_scale']
        self.max_scale: float = DEFAULTS['max_scale']
        self.zoom_sensitivity: float = DEFAULTS['zoom_sensitivity']
        self.history_size: int = DEFAULTS['history_size']
        self.paste_offset: int = DEFAULTS['paste_offset']
        self.last_file: str = DEFAULTS['last_file']
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path) as f:
                d = json.load(f)
            self.grid_size = int(d.get('grid_size', self.grid_size))
            self.snap_to_grid = bool(d.get('snap_to_grid', self.snap_to_grid))
            self.show_grid = bool(d.get('show_grid', self.show_grid))
            self.min_scale = float(d.get('min_scale', self.min_scale))
            self.max_scale = float(d.get('max_scale', self.max_scale))
            self.zoom_sensitivity = float(d.get('zoom_sensitivity', self.zoom_sensitivity))
            self.history_size = int(d.get('history_size', self.history_size))
            self.paste_offset = int(d.get('paste_offset', self.paste_offset))
            self.last_file = str(d.get('last_file', self.last_file))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            print(f"[Settings] Could not read {self.path}: {e}; using defaults")
        if self.min_scale <= 0 or self.min_scale > self.max_scale:
            print(f"[Settings] Bad zoom limits {self.min_scale}..{self.max_scale}; using defaults")
            self.min_scale, self.max_scale = DEFAULTS['min_scale'], DEFAULTS['max_scale']
        if self.grid_size <= 0:
            self.grid_size = DEFAULTS['grid_size']

    def to_dict(self) -> dict:
        return {
            'grid_size': self.grid_size,
            'snap_to_grid': self.snap_to_grid,
            'show_grid': self.show_grid,
            'min_scale': self.min_scale,
            'max_scale': self.max_scale,
            'zoom_sensitivity': self.zoom_sensitivity,
            'history_size': self.history_size,
            'paste_offset': self.paste_offset,
            'last_file': self.last_file,
        }

    def save(self):
        """Persist current settings to the user config file."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            print(f"[Settings] Could not write {self.path}: {e}")
