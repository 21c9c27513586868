"""Single-band raster mosaics composed from layer pyramids."""

__version__ = "0.1.0"
