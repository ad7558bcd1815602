"""
Startup-time content: the blobs, the route table that owns them, and the
scanner that fills it from the web root.
"""

from .blob import ContentBlob, blob_length, release_blob
from .routes import RouteEntry, RouteTable
from .scanner import ScanResult, WebRootScanner, route_for, scan_web_root

__all__ = [
    "ContentBlob",
    "blob_length",
    "release_blob",
    "RouteEntry",
    "RouteTable",
    "ScanResult",
    "WebRootScanner",
    "route_for",
    "scan_web_root",
]
