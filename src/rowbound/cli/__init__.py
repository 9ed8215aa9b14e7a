"""Command-line tooling for inspecting mappings and creating development schemas."""

from .app import app

__all__ = ["app"]
