"""
BeatWatch: geofenced beat duty lifecycle and radius-violation detection.
"""

__version__ = "0.1.0"
