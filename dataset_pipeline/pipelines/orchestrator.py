"""Pipeline orchestrator for the acquire, normalize, load and archive workflow."""

import asyncio
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from ..core.config import Settings, load_base_config, settings
from ..core.errors import PipelineError
from .acquire import get_dataset
from .archive import ArchiveDestination, ensure_dir, list_archived_days, relocate, replicate_tree
from .collaborators import StageCollaborator, load_collaborator, run_collaborator
from .results import PROCESS_STAGES, PipelineRunResult, Stage, StageResult, StageStatus
from .trigger import trigger_scrape

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs the pipeline stages for one set of run options.

    Stages run strictly in order. Every stage outcome is returned as a
    ``StageResult``; no exception escapes a stage. By default a failed stage
    skips the rest of the run, set ``continue_on_stage_failure`` to keep going.
    """

    def __init__(
        self,
        options: Optional[Settings] = None,
        normalizer: Optional[StageCollaborator] = None,
        loader: Optional[StageCollaborator] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.options = options or settings
        self.session = session
        self._normalizer = normalizer
        self._loader = loader

    @property
    def normalizer(self) -> StageCollaborator:
        if self._normalizer is None:
            self._normalizer = load_collaborator(self.options.normalizer, "normalizer")
        return self._normalizer

    @property
    def loader(self) -> StageCollaborator:
        if self._loader is None:
            self._loader = load_collaborator(self.options.loader, "loader")
        return self._loader

    async def _run_stage(
        self, stage: Stage, action: Callable[[], Awaitable[Optional[Dict[str, Any]]]]
    ) -> StageResult:
        logger.info(f"Starting stage: {stage.value}")
        result = StageResult(stage=stage, status=StageStatus.SUCCESS)

        try:
            result.details = await action() or {}
            logger.info(f"Stage {stage.value} completed")
        except PipelineError as e:
            logger.error(f"Stage {stage.value} failed: {e}")
            result.status = StageStatus.FAILED
            result.error_type = type(e).__name__
            result.error = str(e)
        except Exception as e:
            logger.exception(f"Stage {stage.value} failed unexpectedly: {e}")
            result.status = StageStatus.FAILED
            result.error_type = type(e).__name__
            result.error = str(e)

        result.completed_at = datetime.now(timezone.utc).isoformat()
        return result

    async def _acquire(self) -> Dict[str, Any]:
        path = await get_dataset(self.options, self.session)
        return {"path": str(path)}

    async def _normalize(self) -> Dict[str, Any]:
        await run_collaborator(self.normalizer, self.options, "normalizer")
        return {
            "raw_data_dir": self.options.raw_data_dir,
            "normalized_data_dir": self.options.normalized_data_dir,
        }

    async def _load(self) -> Dict[str, Any]:
        await run_collaborator(self.loader, self.options, "loader")
        return {"normalized_data_dir": self.options.normalized_data_dir}

    async def _archive(self, today: Optional[date] = None) -> Dict[str, Any]:
        destination = ArchiveDestination.for_day(self.options, today)

        ensure_dir(destination.dated_dir)
        ensure_dir(destination.raw)
        ensure_dir(destination.normalized)

        # Independent directories, safe to move side by side
        raw_report, normalized_report = await asyncio.gather(
            relocate(self.options.raw_data_dir, destination.raw),
            relocate(self.options.normalized_data_dir, destination.normalized),
        )

        details: Dict[str, Any] = {
            "destination": str(destination.dated_dir),
            "raw": raw_report.model_dump(),
            "normalized": normalized_report.model_dump(),
        }

        if self.options.skip_archive_download:
            logger.info("Skipping download directory archival")
            details["download"] = {"skipped": True}
        else:
            ensure_dir(destination.download)
            copied = await replicate_tree(self.options.download_dir, destination.download)
            details["download"] = {
                "source": self.options.download_dir,
                "destination": str(destination.download),
                "copied": copied,
            }

        return details

    async def acquire(self) -> StageResult:
        """Download the dataset into the raw data directory."""
        return await self._run_stage(Stage.ACQUIRE, self._acquire)

    async def normalize(self) -> StageResult:
        """Run the normalizer over the raw data directory."""
        return await self._run_stage(Stage.NORMALIZE, self._normalize)

    async def load(self) -> StageResult:
        """Run the loader over the normalized data directory."""
        return await self._run_stage(Stage.LOAD, self._load)

    async def archive(self, today: Optional[date] = None) -> StageResult:
        """Move raw and normalized data into the dated archive and copy downloads there.

        Sub-operation failures are logged and reported in the stage details
        without failing the stage.
        """
        return await self._run_stage(Stage.ARCHIVE, lambda: self._archive(today))

    async def run_full_pipeline(self, today: Optional[date] = None) -> PipelineRunResult:
        """Run complete pipeline: acquire + normalize + load + archive."""
        logger.info("Processing dataset")

        run = PipelineRunResult()
        stage_runners = {
            Stage.ACQUIRE: self.acquire,
            Stage.NORMALIZE: self.normalize,
            Stage.LOAD: self.load,
            Stage.ARCHIVE: lambda: self.archive(today),
        }

        failed: Optional[StageResult] = None
        for stage in PROCESS_STAGES:
            if failed is not None and not self.options.continue_on_stage_failure:
                run.stages.append(StageResult.skipped(stage, f"{failed.stage.value} failed"))
                continue

            result = await stage_runners[stage]()
            run.stages.append(result)
            if not result.succeeded and failed is None:
                failed = result

        run.completed_at = datetime.now(timezone.utc).isoformat()

        if run.success:
            logger.info("Finish processing dataset")
        else:
            logger.error(
                f"Finish processing dataset with failures: "
                f"{[s.stage.value for s in run.stages if s.status == StageStatus.FAILED]}"
            )
        return run

    async def trigger_scrape(
        self, base_config: Optional[Dict[str, Any]] = None, today: Optional[date] = None
    ) -> StageResult:
        """Submit the remote scrape task for the configured schedule."""

        async def _trigger() -> Dict[str, Any]:
            config = base_config
            if config is None:
                config = load_base_config(self.options.task_config_file)
            return await trigger_scrape(self.options, config, self.session, today)

        return await self._run_stage(Stage.TRIGGER, _trigger)

    def get_pipeline_status(self) -> Dict[str, Any]:
        """Get working directories and archived days."""
        directories = {
            "raw_data_dir": self.options.raw_data_dir,
            "normalized_data_dir": self.options.normalized_data_dir,
            "download_dir": self.options.download_dir,
        }

        status: Dict[str, Any] = {
            "archived_dir": self.options.archived_dir,
            "today_destination": str(ArchiveDestination.for_day(self.options).dated_dir),
            "archived_days": list_archived_days(self.options.archived_dir),
            "directories": {},
        }

        for name, path in directories.items():
            p = Path(path)
            status["directories"][name] = {
                "path": path,
                "exists": p.is_dir(),
                "entries": len(list(p.iterdir())) if p.is_dir() else 0,
            }

        return status


# Convenience functions for CLI usage


async def run_full_pipeline(options: Optional[Settings] = None) -> PipelineRunResult:
    """Run the complete pipeline."""
    orchestrator = PipelineOrchestrator(options)
    return await orchestrator.run_full_pipeline()


async def run_scrape_trigger(
    options: Optional[Settings] = None, base_config: Optional[Dict[str, Any]] = None
) -> StageResult:
    """Submit the remote scrape task."""
    orchestrator = PipelineOrchestrator(options)
    return await orchestrator.trigger_scrape(base_config)
