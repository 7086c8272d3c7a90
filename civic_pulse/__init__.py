"""
Civic Pulse - civic issue reporting backend.
"""

__version__ = "0.1.0"
