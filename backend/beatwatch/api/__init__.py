"""
HTTP API blueprints for BeatWatch.

- beats: /api/v1/beats/* (registry, acceptance, duty, fixes, replacements)
- violations: /api/v1/violations/*
- duty: /api/v1/duty/* (externally driven scheduled-end tick)
"""

from .beats import bp as beats_bp
from .violations import bp as violations_bp
from .duty import bp as duty_bp
from .common import register_error_handlers

__all__ = ["beats_bp", "violations_bp", "duty_bp", "register_error_handlers"]
