"""
scenecarve - align photographs of one scene onto a baseline and carve
foreground overlays from painted hints
"""

__version__ = "0.1.0"
