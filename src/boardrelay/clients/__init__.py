"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

HTTP clients for destination APIs and remote collaborators.
"""

from .board import BoardApiClient, sanitize_board_id, sanitize_item
from .broker import HttpImportBroker
from .generator import HttpContentGenerator
from .transport import HttpResponse, HttpTransport, UrllibTransport

__all__ = [
    "BoardApiClient",
    "HttpContentGenerator",
    "HttpImportBroker",
    "HttpResponse",
    "HttpTransport",
    "UrllibTransport",
    "sanitize_board_id",
    "sanitize_item",
]
