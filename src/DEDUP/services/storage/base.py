"""
Known-identifier store contract.

Every store used by the existence resolver and persistence writer implements
KnownIdentifierStore. Implementations translate their backend's errors into
RetryableStoreError (transient, safe to retry the whole batch) or StoreError
(fatal).
"""

from abc import ABC, abstractmethod
from decimal import Context, Decimal
from typing import Collection, Optional, Set, Tuple

from DEDUP.services.extraction.value_extractor import Identifier


def as_decimal(identifier: Identifier) -> Decimal:
    """
    Exact Decimal form of an identifier with trailing zeros stripped.

    Example:
        >>> as_decimal(1000)
        Decimal('1E+3')
        >>> as_decimal(2.5)
        Decimal('2.5')
    """
    number = Decimal(str(identifier))
    # Context precision equal to the digit count makes normalize() lossless
    return number.normalize(Context(prec=max(len(number.as_tuple().digits), 1)))


class KnownIdentifierStore(ABC):
    """
    Append-only persistent set of every identifier ever accepted.

    Attributes:
        max_lookup_batch (int): Largest key collection accepted by batch_exists
        max_write_batch (int): Largest item collection accepted by batch_insert
        max_number_digits (Optional[int]): Significant digits a stored number
            may carry (None: unbounded)
        number_exponent_range (Optional[Tuple[int, int]]): Inclusive bounds on
            the adjusted exponent of a non-zero stored number (None: unbounded)
    """

    max_lookup_batch: int = 100
    max_write_batch: int = 25
    max_number_digits: Optional[int] = None
    number_exponent_range: Optional[Tuple[int, int]] = None

    @abstractmethod
    async def batch_exists(self, keys: Collection[Identifier]) -> Set[Identifier]:
        """
        Return the subset of keys already present in the store.

        Raises:
            RetryableStoreError: On throttling or other transient faults
            StoreError: On any non-retryable fault
        """

    @abstractmethod
    async def batch_insert(self, items: Collection[Identifier]) -> None:
        """
        Insert items. Re-inserting a present key must leave state unchanged.

        Raises:
            RetryableStoreError: On throttling or other transient faults
            StoreError: On any non-retryable fault
        """

    def accepts(self, identifier: Identifier) -> bool:
        """
        Whether the identifier can be stored exactly by this backend.

        Identifiers that fail this check are never sent to batch_exists or
        batch_insert.

        Example:
            >>> DynamoDBIdentifierStore(client=client).accepts(int("9" * 45))
            False
        """
        if self.max_number_digits is None and self.number_exponent_range is None:
            return True

        number = as_decimal(identifier)
        if number.is_zero():
            return True
        if (
            self.max_number_digits is not None
            and len(number.as_tuple().digits) > self.max_number_digits
        ):
            return False
        if self.number_exponent_range is not None:
            lowest, highest = self.number_exponent_range
            return lowest <= number.adjusted() <= highest
        return True

    async def ping(self) -> bool:
        """Cheap connectivity check used by the health endpoint."""
        return True

    @property
    def name(self) -> str:
        return type(self).__name__
