"""Document conversion and rasterization pipeline."""

__version__ = "0.1.0"
