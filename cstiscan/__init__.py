"""
cstiscan - Client-Side Template Injection detection engine.
"""

__version__ = "1.0.0"
