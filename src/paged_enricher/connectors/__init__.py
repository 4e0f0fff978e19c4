"""Concrete sources, enrichers and sinks."""

from . import demo, files, http

__all__ = ["demo", "files", "http"]
