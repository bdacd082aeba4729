"""HTTP API for Janitarr."""

from .server import WebServer

__all__ = ['WebServer']
