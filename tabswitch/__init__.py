"""tabswitch - keyboard-driven quick switcher for open browser tabs."""

__version__ = "0.1.0"
