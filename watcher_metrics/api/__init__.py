"""Superficie HTTP de consulta."""

from .endpoints import create_app, router

__all__ = ["create_app", "router"]
