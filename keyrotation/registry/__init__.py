"""Registry backends for credential records."""

from __future__ import annotations

from keyrotation.registry.base import Registry, ScannedRow, UpdateResult
from keyrotation.registry.dynamodb_registry import DynamoDBRegistry
from keyrotation.registry.supabase_registry import SupabaseRegistry

__all__ = [
    "DynamoDBRegistry",
    "Registry",
    "ScannedRow",
    "SupabaseRegistry",
    "UpdateResult",
]
