"""Web API for the arrow scoring system."""

from .app import ScoringWebApp, create_app

__all__ = ['ScoringWebApp', 'create_app']
