"""handlers/__init__.py — re-export handler functions for convenience."""
from .decorations import decoration_options, decorations_payload
from .hover import get_hover

__all__ = ['decoration_options', 'decorations_payload', 'get_hover']
