"""
Known-identifier store implementations.

Modules:
    base: KnownIdentifierStore contract
    dynamodb_store: DynamoDB implementation (production)
    memory_store: In-process implementation (local development, tests)
"""

from typing import Optional

from DEDUP.core.exceptions import ConfigError
from DEDUP.core.settings import Settings, settings as default_settings
from DEDUP.services.storage.base import KnownIdentifierStore
from DEDUP.services.storage.memory_store import InMemoryIdentifierStore


def build_store(config: Optional[Settings] = None) -> KnownIdentifierStore:
    """
    Create the store selected by settings.store_backend.

    Raises:
        ConfigError: If the backend name is unknown
    """
    config = config or default_settings

    if config.store_backend == "memory":
        return InMemoryIdentifierStore()
    if config.store_backend == "dynamodb":
        from DEDUP.services.storage.dynamodb_store import DynamoDBIdentifierStore

        return DynamoDBIdentifierStore(
            table_name=config.get_table_name(),
            key_attribute=config.dynamodb_key_attribute,
            config=config,
        )
    raise ConfigError(
        f"Unknown store backend: {config.store_backend}",
        details={"valid_backends": ["dynamodb", "memory"]}
    )


__all__ = [
    "KnownIdentifierStore",
    "InMemoryIdentifierStore",
    "build_store",
]
