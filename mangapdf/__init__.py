"""Convert manga page images into a single PDF, through a WSGI service or as a library."""

__version__ = "0.1.0"