"""
DynamoDB-backed known-identifier store.

This module provides the DynamoDBIdentifierStore class which implements the
KnownIdentifierStore contract on a DynamoDB table with a numeric partition key.
Lookups use BatchGetItem (max 100 keys) and inserts use BatchWriteItem
(max 25 put requests).

Module Input:
    - Identifier batches from the existence resolver and persistence writer
    - AWS credentials, region and table name from settings

Module Output:
    - Existing-subset results for lookups
    - Durable PutRequests for new identifiers
    - RetryableStoreError / StoreError classification of AWS faults
"""

import asyncio
from decimal import Decimal, DecimalException
from typing import Any, Collection, Dict, List, Optional, Set

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from DEDUP.core.exceptions import ConfigError, RetryableStoreError, StoreError
from DEDUP.core.logging_config import get_logger
from DEDUP.core.settings import (
    DYNAMODB_EXPONENT_RANGE,
    DYNAMODB_MAX_NUMBER_DIGITS,
    Settings,
    settings,
)
from DEDUP.services.extraction.value_extractor import Identifier, normalize_identifier
from DEDUP.services.storage.base import KnownIdentifierStore, as_decimal

logger = get_logger(__name__)


# Error codes DynamoDB documents as safe to retry
RETRYABLE_ERROR_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    "LimitExceededException",
}

RETRYABLE_BOTOCORE_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


class DynamoDBIdentifierStore(KnownIdentifierStore):
    """
    Known-identifier store on a DynamoDB table.

    Each identifier is one item whose only attribute is the numeric partition
    key, so PutRequest is naturally idempotent: writing an existing key
    replaces it with an identical item.

    boto3 clients are blocking; every request is pushed to a worker thread
    with asyncio.to_thread so concurrent batches overlap.

    Attributes:
        table_name (str): Target table
        key_attribute (str): Numeric partition key attribute name
        _client: boto3 DynamoDB low-level client

    Thread Safety:
        boto3 low-level clients are thread-safe; one instance is shared by all
        concurrent batches.
    """

    max_number_digits = DYNAMODB_MAX_NUMBER_DIGITS
    number_exponent_range = DYNAMODB_EXPONENT_RANGE

    def __init__(
        self,
        table_name: Optional[str] = None,
        key_attribute: Optional[str] = None,
        client: Optional[Any] = None,
        config: Optional[Settings] = None,
    ):
        """
        Initialize DynamoDB store.

        Creates a boto3 DynamoDB client from settings unless one is injected.
        Falls back to the default credential chain (IAM role, instance
        profile) when no explicit credentials are configured.

        Args:
            table_name (Optional[str]): Table name (default: from settings)
            key_attribute (Optional[str]): Partition key name (default: from settings)
            client (Optional[Any]): Pre-built boto3 DynamoDB client
            config (Optional[Settings]): Settings to read AWS options from

        Raises:
            ConfigError: If the table name is empty or the client cannot be built
        """
        config = config or settings
        self.table_name = table_name or config.get_table_name()
        self.key_attribute = key_attribute or config.dynamodb_key_attribute
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

        if client is not None:
            self._client = client
        else:
            try:
                session = boto3.Session(**config.get_boto3_session_kwargs())
                self._client = session.client(
                    "dynamodb",
                    endpoint_url=config.dynamodb_endpoint_url,
                    config=Config(
                        retries={
                            "max_attempts": config.dynamodb_sdk_max_attempts,
                            "mode": "standard",
                        }
                    ),
                )
            except (BotoCoreError, ValueError) as e:
                raise ConfigError(
                    "Failed to initialize DynamoDB client",
                    details={"error": str(e), "table": self.table_name}
                )

        logger.info(
            f"Initialized DynamoDBIdentifierStore for table '{self.table_name}' "
            f"(key attribute '{self.key_attribute}')"
        )

    # ---------------- Encoding ----------------

    def _encode_key(self, identifier: Identifier) -> Dict[str, Any]:
        # TypeSerializer rejects floats; Decimal(str()) keeps the shortest repr
        number = Decimal(str(identifier))
        if len(number.as_tuple().digits) > self.max_number_digits:
            # 10**40 fits once its trailing zeros move into the exponent
            number = as_decimal(identifier)
        try:
            return {self.key_attribute: self._serializer.serialize(number)}
        except (DecimalException, TypeError) as e:
            # DynamoDB numbers carry at most 38 significant digits
            raise StoreError(
                f"Identifier cannot be stored as a DynamoDB number: {identifier}",
                details={"identifier": str(identifier), "error": str(e)}
            )

    def _decode_key(self, item: Dict[str, Any]) -> Optional[Identifier]:
        raw = item.get(self.key_attribute)
        if raw is None:
            return None
        return normalize_identifier(self._deserializer.deserialize(raw))

    # ---------------- Error translation ----------------

    def _translate_error(self, operation: str, error: Exception, batch_size: int) -> StoreError:
        """
        Map a boto3/botocore exception onto the store error hierarchy.

        Args:
            operation (str): "batch_exists" or "batch_insert"
            error (Exception): Raised exception
            batch_size (int): Number of identifiers in the failed request

        Returns:
            StoreError: RetryableStoreError for throttling and dropped
                connections, StoreError otherwise
        """
        details = {
            "operation": operation,
            "table": self.table_name,
            "batch_size": batch_size,
            "error": str(error),
        }

        if isinstance(error, ClientError):
            error_code = error.response.get("Error", {}).get("Code", "Unknown")
            details["error_code"] = error_code
            if error_code in RETRYABLE_ERROR_CODES:
                return RetryableStoreError(f"DynamoDB throttled {operation}: {error_code}", details)
            return StoreError(f"DynamoDB {operation} failed: {error_code}", details)

        if isinstance(error, RETRYABLE_BOTOCORE_ERRORS):
            return RetryableStoreError(f"DynamoDB connection fault during {operation}", details)

        return StoreError(f"DynamoDB {operation} failed: {error}", details)

    # ---------------- Blocking calls ----------------

    def _batch_get(self, keys: List[Identifier]) -> Set[Identifier]:
        request = {
            self.table_name: {
                "Keys": [self._encode_key(key) for key in keys],
                "ProjectionExpression": "#k",
                "ExpressionAttributeNames": {"#k": self.key_attribute},
            }
        }
        try:
            response = self._client.batch_get_item(RequestItems=request)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error("batch_exists", e, len(keys))

        unprocessed = response.get("UnprocessedKeys") or {}
        if unprocessed.get(self.table_name, {}).get("Keys"):
            pending = len(unprocessed[self.table_name]["Keys"])
            raise RetryableStoreError(
                f"DynamoDB left {pending} keys unprocessed",
                details={
                    "operation": "batch_exists",
                    "table": self.table_name,
                    "batch_size": len(keys),
                    "unprocessed": pending,
                }
            )

        found: Set[Identifier] = set()
        for item in response.get("Responses", {}).get(self.table_name, []):
            identifier = self._decode_key(item)
            if identifier is not None:
                found.add(identifier)
        return found

    def _batch_write(self, items: List[Identifier]) -> None:
        request = {
            self.table_name: [
                {"PutRequest": {"Item": self._encode_key(item)}} for item in items
            ]
        }
        try:
            response = self._client.batch_write_item(RequestItems=request)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error("batch_insert", e, len(items))

        unprocessed = (response.get("UnprocessedItems") or {}).get(self.table_name) or []
        if unprocessed:
            # Puts are idempotent, so the whole batch can be replayed
            raise RetryableStoreError(
                f"DynamoDB left {len(unprocessed)} items unprocessed",
                details={
                    "operation": "batch_insert",
                    "table": self.table_name,
                    "batch_size": len(items),
                    "unprocessed": len(unprocessed),
                }
            )

    # ---------------- KnownIdentifierStore ----------------

    async def batch_exists(self, keys: Collection[Identifier]) -> Set[Identifier]:
        if not keys:
            return set()
        return await asyncio.to_thread(self._batch_get, list(keys))

    async def batch_insert(self, items: Collection[Identifier]) -> None:
        if not items:
            return
        await asyncio.to_thread(self._batch_write, list(items))

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._client.describe_table, TableName=self.table_name)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"DynamoDB health check failed for '{self.table_name}': {e}")
            return False
