"""
Core services for the deduplication system.

Subpackages:
    extraction: Upload reading and numeric identifier extraction
    storage: Known-identifier store contract and implementations
    dedup: Batched existence lookup, partitioning and persistence
    output: Result file serialization
    pipeline: Stage orchestration
"""
