"""
UI package for matchclock.

This package contains the Flask host exposing a game session over JSON.
"""
from .web_app import create_app, run_web_app

__all__ = ["create_app", "run_web_app"]
