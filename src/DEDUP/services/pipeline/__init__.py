"""
Pipeline orchestration.

Modules:
    orchestrator: DedupPipeline state machine and result types
"""

from typing import Optional

from DEDUP.core.settings import Settings, settings as default_settings
from DEDUP.services.dedup import ExistenceResolver, PersistenceWriter
from DEDUP.services.output.file_builder import OutputFileBuilder
from DEDUP.services.pipeline.orchestrator import (
    DedupPipeline,
    FailureCause,
    OutputMode,
    PipelineOutcome,
    PipelineResult,
    PipelineStage,
)
from DEDUP.services.storage.base import KnownIdentifierStore


def build_pipeline(
    store: KnownIdentifierStore, config: Optional[Settings] = None
) -> DedupPipeline:
    """Wire resolver, writer and builder around one store from settings."""
    config = config or default_settings

    resolver = ExistenceResolver(
        store,
        batch_size=config.lookup_batch_size,
        max_concurrency=config.lookup_max_concurrency,
        max_retries=config.store_max_retries,
        retry_delay=config.store_retry_delay_sec,
    )
    writer = PersistenceWriter(
        store,
        batch_size=config.write_batch_size,
        max_concurrency=config.write_max_concurrency,
        max_retries=config.store_max_retries,
        retry_delay=config.store_retry_delay_sec,
    )
    builder = OutputFileBuilder(
        config.upload_dir,
        config.upload_url_prefix,
        retention_seconds=config.output_retention_hours * 3600,
    )
    return DedupPipeline(resolver, writer, builder, OutputMode(config.output_mode))


__all__ = [
    "DedupPipeline",
    "FailureCause",
    "OutputMode",
    "PipelineOutcome",
    "PipelineResult",
    "PipelineStage",
    "build_pipeline",
]
