"""
Blueprints package for the BIFA administration API
Contains modular route blueprints grouped by federation role
"""

from .auth import auth_bp
from .secretariat import secretariat_bp
from .referee import referee_bp
from .federation import federation_bp
from .public import public_bp

__all__ = ['auth_bp', 'secretariat_bp', 'referee_bp', 'federation_bp', 'public_bp']
