"""
Service Layer - per-run scan options and state.
"""

from cstiscan.services.scan_context import ScanContext, ScanOptions

__all__ = [
    "ScanContext",
    "ScanOptions",
]
