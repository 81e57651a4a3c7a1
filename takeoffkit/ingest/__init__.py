"""Transactional takeoff import: executor and storage clients."""

from .import_executor import (
    execute_import,
    handle_import_request,
    DatabaseClient,
)
from .memory_client import InMemoryClient, InMemoryStore
from .supabase_client import SupabaseClient

__all__ = [
    "execute_import",
    "handle_import_request",
    "DatabaseClient",
    "InMemoryClient",
    "InMemoryStore",
    "SupabaseClient",
]
