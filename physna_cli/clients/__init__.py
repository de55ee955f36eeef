"""API clients for the Physna platform."""

from .auth import TokenManager, get_token_manager, reset_token_manager
from .folder_service import FolderService
from .rest_client import RESTClient, get_rest_client, reset_rest_client

__all__ = [
    "TokenManager",
    "get_token_manager",
    "reset_token_manager",
    "FolderService",
    "RESTClient",
    "get_rest_client",
    "reset_rest_client",
]
