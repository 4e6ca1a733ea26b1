"""Metadata fetching: the fetcher interface, HTTP client, dispatcher and policy."""

from clipkeeper.fetch.base import FetchResult, MetadataFetcher
from clipkeeper.fetch.dispatcher import DispatcherStatus, FetchDispatcher
from clipkeeper.fetch.http_client import MetadataHttpClient, extract_item_name
from clipkeeper.fetch.policy import ItemFetchPolicy, is_transient_error

__all__ = [
    "FetchResult",
    "MetadataFetcher",
    "MetadataHttpClient",
    "extract_item_name",
    "FetchDispatcher",
    "DispatcherStatus",
    "ItemFetchPolicy",
    "is_transient_error",
]
