"""Command-line interface for the DataConnect browser runner."""

from .main import app

__all__ = ['app']
