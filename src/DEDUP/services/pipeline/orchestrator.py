"""
Deduplication pipeline orchestrator.

This module provides the DedupPipeline class that sequences extraction,
existence lookup, partitioning, persistence and output building for one
uploaded dataset, and reports a terminal outcome instead of raising.

Module Input:
    - Raw rows parsed from an upload
    - Output format and a per-request run id
    - Wired ExistenceResolver, PersistenceWriter and OutputFileBuilder

Module Output:
    - PipelineResult with outcome, partition, write report and output files
    - Stage-by-stage log trail
"""

import asyncio
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from DEDUP.core.exceptions import (
    DedupServiceError,
    ExistenceCheckError,
    OutputBuildError,
    PersistenceError,
)
from DEDUP.core.logging_config import get_logger
from DEDUP.services.dedup.existence_resolver import ExistenceResolver
from DEDUP.services.dedup.partitioner import PartitionResult, partition
from DEDUP.services.dedup.persistence_writer import PersistenceWriter, WriteReport
from DEDUP.services.extraction.upload_reader import TabularFormat
from DEDUP.services.extraction.value_extractor import Identifier, extract_identifiers
from DEDUP.services.output.file_builder import OutputFile, OutputFileBuilder

logger = get_logger(__name__)


class PipelineStage(str, Enum):
    """Pipeline states; ERRORED is absorbing."""
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    PARTITIONING = "partitioning"
    PERSISTING = "persisting"
    BUILDING_OUTPUT = "building_output"
    DONE = "done"
    ERRORED = "errored"


class PipelineOutcome(str, Enum):
    NO_DATA = "no_data"
    ALL_DUPLICATES = "all_duplicates"
    SUCCESS = "success"
    FAILED = "failed"


class FailureCause(str, Enum):
    EXTRACTION = "extraction"
    EXISTENCE_CHECK = "existence_check"
    PERSISTENCE = "persistence"
    OUTPUT = "output"
    UNEXPECTED = "unexpected"


class OutputMode(str, Enum):
    """PAIR writes new + duplicate files; SINGLE writes the new file only."""
    PAIR = "pair"
    SINGLE = "single"


@dataclass
class PipelineResult:
    """Terminal state of one pipeline run."""
    run_id: str
    outcome: PipelineOutcome
    stage: PipelineStage
    candidates: List[Identifier] = field(default_factory=list)
    rejected: List[Identifier] = field(default_factory=list)
    partition: Optional[PartitionResult] = None
    write_report: Optional[WriteReport] = None
    new_file: Optional[OutputFile] = None
    duplicate_file: Optional[OutputFile] = None
    cause: Optional[FailureCause] = None
    error: Optional[str] = None
    failed_stage: Optional[PipelineStage] = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is not PipelineOutcome.FAILED

    def summary(self) -> Dict[str, Any]:
        """Counts reported back to the client."""
        return {
            "candidates": len(self.candidates),
            "rejected": len(self.rejected),
            "new": len(self.partition.new) if self.partition else 0,
            "duplicates": len(self.partition.duplicate) if self.partition else 0,
            "batches_written": self.write_report.batches_written if self.write_report else 0,
        }


# Exception type -> failure classification
_CAUSES = (
    (ExistenceCheckError, FailureCause.EXISTENCE_CHECK),
    (PersistenceError, FailureCause.PERSISTENCE),
    (OutputBuildError, FailureCause.OUTPUT),
)


class DedupPipeline:
    """
    Runs one dataset through the deduplication stages.

    Stages advance strictly in order; the concurrent store requests of one
    stage all complete before the next stage begins. Short-circuits:

        EXTRACTING   -> DONE(NO_DATA)          empty candidate set, no store call

    Extracted identifiers the store cannot hold exactly (store.accepts) are
    set aside as rejected before any store call; they appear in neither
    output file. If nothing storable remains the run ends in NO_DATA.
        PARTITIONING -> BUILDING_OUTPUT        nothing new, persistence skipped
                     -> DONE(ALL_DUPLICATES)

    Any DedupServiceError moves the run to ERRORED with a FailureCause and no
    later stage executes. asyncio.CancelledError is not caught, so cancelling
    the run cancels in-flight batches.

    Attributes:
        resolver (ExistenceResolver): Existence lookup stage
        writer (PersistenceWriter): Persistence stage
        builder (OutputFileBuilder): Output stage
        output_mode (OutputMode): Which files to produce
    """

    def __init__(
        self,
        resolver: ExistenceResolver,
        writer: PersistenceWriter,
        builder: OutputFileBuilder,
        output_mode: OutputMode = OutputMode.PAIR,
    ):
        self.resolver = resolver
        self.writer = writer
        self.builder = builder
        self.output_mode = OutputMode(output_mode)

        logger.info(f"Initialized DedupPipeline: output_mode={self.output_mode.value}")

    def _split_storable(
        self, identifiers: List[Identifier]
    ) -> Tuple[List[Identifier], List[Identifier]]:
        store = self.resolver.store
        storable: List[Identifier] = []
        rejected: List[Identifier] = []
        for identifier in identifiers:
            if store.accepts(identifier):
                storable.append(identifier)
            else:
                rejected.append(identifier)
        return storable, rejected

    def _enter(self, result: PipelineResult, stage: PipelineStage) -> None:
        logger.info(f"[{result.run_id}] {result.stage.value} -> {stage.value}")
        result.stage = stage

    async def _build_outputs(
        self,
        result: PipelineResult,
        parts: PartitionResult,
        file_format: TabularFormat,
    ) -> None:
        jobs = []
        labels = []
        if parts.new:
            jobs.append(asyncio.to_thread(
                self.builder.build, parts.new, "new", file_format, result.run_id
            ))
            labels.append("new")
        if self.output_mode is OutputMode.PAIR:
            jobs.append(asyncio.to_thread(
                self.builder.build, parts.duplicate, "duplicate", file_format, result.run_id
            ))
            labels.append("duplicate")

        files = await asyncio.gather(*jobs)
        for label, output in zip(labels, files):
            if label == "new":
                result.new_file = output
            else:
                result.duplicate_file = output

    async def run(
        self,
        rows: Sequence[Sequence[Any]],
        output_format: TabularFormat = TabularFormat.CSV,
        run_id: Optional[str] = None,
    ) -> PipelineResult:
        """
        Full pipeline: extract -> resolve -> partition -> persist -> build output.

        Args:
            rows: Raw rows from the upload reader
            output_format: Format for result files
            run_id: Per-request id, used for output directory and log lines

        Returns:
            PipelineResult: Terminal state. outcome is FAILED (with cause and
                failed_stage) when any stage raised a DedupServiceError.

        Raises:
            asyncio.CancelledError: If the caller cancels the run
        """
        run_id = run_id or datetime.now().strftime("%Y%m%d%H%M%S%f")
        result = PipelineResult(
            run_id=run_id,
            outcome=PipelineOutcome.FAILED,
            stage=PipelineStage.EXTRACTING,
        )
        started = datetime.now()

        try:
            # 1) Extract
            logger.info(f"[{run_id}] Step 1/5: Extracting identifiers…")
            extracted = extract_identifiers(rows)
            result.candidates, result.rejected = self._split_storable(extracted)
            if result.rejected:
                logger.warning(
                    f"[{run_id}] Skipping {len(result.rejected)} identifiers the store "
                    f"cannot hold (e.g. {result.rejected[0]})"
                )
            if not result.candidates:
                self._enter(result, PipelineStage.DONE)
                result.outcome = PipelineOutcome.NO_DATA
                logger.warning(f"[{run_id}] No numeric identifiers found")
                return result

            # 2) Resolve
            self._enter(result, PipelineStage.RESOLVING)
            logger.info(f"[{run_id}] Step 2/5: Checking {len(result.candidates)} candidates…")
            existing = await self.resolver.resolve(result.candidates)

            # 3) Partition
            self._enter(result, PipelineStage.PARTITIONING)
            parts = partition(result.candidates, existing)
            result.partition = parts
            logger.info(
                f"[{run_id}] Step 3/5: {len(parts.new)} new, {len(parts.duplicate)} duplicates"
            )

            # 4) Persist
            if parts.new:
                self._enter(result, PipelineStage.PERSISTING)
                logger.info(f"[{run_id}] Step 4/5: Persisting new identifiers…")
                result.write_report = await self.writer.write(parts.new)
            else:
                logger.warning(f"[{run_id}] All entries were duplicates; skipping persistence")

            # 5) Output
            self._enter(result, PipelineStage.BUILDING_OUTPUT)
            logger.info(f"[{run_id}] Step 5/5: Building output files…")
            await self._build_outputs(result, parts, output_format)

            self._enter(result, PipelineStage.DONE)
            result.outcome = (
                PipelineOutcome.SUCCESS if parts.new else PipelineOutcome.ALL_DUPLICATES
            )
            return result

        except DedupServiceError as e:
            cause = next(
                (cause for error_type, cause in _CAUSES if isinstance(e, error_type)),
                FailureCause.EXTRACTION if result.stage is PipelineStage.EXTRACTING
                else FailureCause.UNEXPECTED,
            )
            self._fail(result, cause, e.message)
            logger.error(
                f"[{run_id}] Pipeline failed in {result.failed_stage.value}: {e.message}",
                extra={"details": e.details},
            )
            return result

        except Exception as e:
            self._fail(result, FailureCause.UNEXPECTED, str(e))
            logger.error(f"[{run_id}] Unexpected error in {result.failed_stage.value}: {e}")
            logger.debug(traceback.format_exc())
            return result

        finally:
            result.duration_seconds = round((datetime.now() - started).total_seconds(), 3)
            if result.succeeded:
                logger.info(
                    f"[{run_id}] ✓ Pipeline finished: {result.outcome.value} "
                    f"in {result.duration_seconds:.2f}s"
                )

    def _fail(self, result: PipelineResult, cause: FailureCause, message: str) -> None:
        result.failed_stage = result.stage
        result.outcome = PipelineOutcome.FAILED
        result.cause = cause
        result.error = message
        self._enter(result, PipelineStage.ERRORED)
