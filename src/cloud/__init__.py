"""
Google Drive integration.
"""

from .credentials import GoogleCredentialProvider
from .drive_api import DriveTransferClient, escape_query_value, parse_range_header

__all__ = [
    "DriveTransferClient",
    "GoogleCredentialProvider",
    "escape_query_value",
    "parse_range_header",
]
