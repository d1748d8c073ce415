"""Live blog publishing: entry store, HTTP API, sync client and editorial tools."""

__version__ = "0.1.0"
