"""EDS share server: persistence and sharing backend for single-line diagrams."""

__version__ = "0.1.0"
