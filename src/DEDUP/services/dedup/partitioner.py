"""Split candidates into new and duplicate identifiers."""

from dataclasses import dataclass, field
from typing import Collection, List, Sequence

from DEDUP.services.extraction.value_extractor import Identifier


@dataclass
class PartitionResult:
    """
    Disjoint split of one candidate set.

    Both lists keep extraction order so output files are reproducible.
    """
    new: List[Identifier] = field(default_factory=list)
    duplicate: List[Identifier] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.new) + len(self.duplicate)


def partition(
    candidates: Sequence[Identifier], existing: Collection[Identifier]
) -> PartitionResult:
    """
    New = candidates - existing, Duplicate = candidates & existing.

    Example:
        >>> partition([5, 7, 9], {7})
        PartitionResult(new=[5, 9], duplicate=[7])
    """
    existing = set(existing)
    result = PartitionResult()
    for identifier in candidates:
        if identifier in existing:
            result.duplicate.append(identifier)
        else:
            result.new.append(identifier)
    return result
