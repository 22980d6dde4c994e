"""turnbridge — drive a CLI coding agent one subprocess per turn."""

__version__ = "0.1.0"
