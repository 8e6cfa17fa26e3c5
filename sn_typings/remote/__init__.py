"""
Remote instance access via the REST Table API.
"""

from sn_typings.remote.client import (
    AccessTokenProvider,
    RemoteAPIError,
    RemoteAuthenticationError,
    RemoteConnectionError,
    TableApiClient,
    UnexpectedResponseShape,
)
from sn_typings.remote.source import RemoteSchemaSource

__all__ = [
    "AccessTokenProvider",
    "RemoteAPIError",
    "RemoteAuthenticationError",
    "RemoteConnectionError",
    "RemoteSchemaSource",
    "TableApiClient",
    "UnexpectedResponseShape",
]
