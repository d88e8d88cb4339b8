"""
Deduplication core: existence lookup, partitioning and persistence.

Modules:
    batching: Chunking, bounded fan-out and bounded retry helpers
    existence_resolver: Which candidates the store already knows
    partitioner: New vs duplicate split
    persistence_writer: Batched, retrying inserts of new identifiers
"""

from DEDUP.services.dedup.existence_resolver import ExistenceResolver
from DEDUP.services.dedup.partitioner import PartitionResult, partition
from DEDUP.services.dedup.persistence_writer import PersistenceWriter, WriteReport

__all__ = [
    "ExistenceResolver",
    "PartitionResult",
    "partition",
    "PersistenceWriter",
    "WriteReport",
]
