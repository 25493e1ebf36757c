"""Tests for pipeline orchestrator."""

import json
from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from dataset_pipeline.pipelines.orchestrator import PipelineOrchestrator
from dataset_pipeline.pipelines.results import Stage, StageStatus
from tests.conftest import make_response, make_session

ARCHIVE_DAY = date(2024, 3, 7)


class RecordingNormalizer:
    """Normalizer that upper-cases the raw dataset into the normalized directory."""

    def __init__(self):
        self.configs = []

    def get_options(self, options):
        return {
            "raw_data_dir": options.raw_data_dir,
            "normalized_data_dir": options.normalized_data_dir,
            "data_file": options.data_file,
        }

    async def run(self, config):
        self.configs.append(config)
        raw = Path(config["raw_data_dir"]) / config["data_file"]
        out_dir = Path(config["normalized_data_dir"])
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / "normalized.json").write_text(raw.read_text().upper())


class RecordingLoader:
    def __init__(self):
        self.loaded = []

    def get_options(self, options):
        return {"normalized_data_dir": options.normalized_data_dir}

    def run(self, config):
        out_dir = Path(config["normalized_data_dir"])
        self.loaded.extend(sorted(p.name for p in out_dir.iterdir()))


class FailingLoader:
    def get_options(self, options):
        return {}

    async def run(self, config):
        raise RuntimeError("destination store unavailable")


class TestPipelineOrchestrator:
    """Test pipeline orchestrator functionality."""

    @pytest.fixture
    def download_dir(self, options):
        """Populate the download staging directory."""
        download = Path(options.download_dir)
        (download / "pages").mkdir(parents=True)
        (download / "pages" / "page1.html").write_text("<html>1</html>")
        (download / "index.json").write_text("{}")
        return download

    @pytest.fixture
    def session(self):
        return make_session(get_response=make_response(body=b'{"rows": []}'))

    @pytest.fixture
    def orchestrator(self, options, session):
        return PipelineOrchestrator(
            options,
            normalizer=RecordingNormalizer(),
            loader=RecordingLoader(),
            session=session,
        )

    @pytest.mark.asyncio
    async def test_full_pipeline_success(self, orchestrator, options, download_dir):
        """Test a complete run archives raw/normalized by move and downloads by copy."""
        result = await orchestrator.run_full_pipeline(today=ARCHIVE_DAY)

        assert result.success is True
        assert [s.stage for s in result.stages] == [
            Stage.ACQUIRE,
            Stage.NORMALIZE,
            Stage.LOAD,
            Stage.ARCHIVE,
        ]
        assert orchestrator.loader.loaded == ["normalized.json"]

        dated = Path(options.archived_dir) / "2024" / "03" / "07"
        assert (dated / "raw" / "dataset.json").read_text() == '{"rows": []}'
        assert (dated / "normalized" / "normalized.json").read_text() == '{"ROWS": []}'
        assert (dated / "download" / "pages" / "page1.html").read_text() == "<html>1</html>"
        assert (dated / "download" / "index.json").exists()

        # Working directories emptied, download staging untouched
        assert list(Path(options.raw_data_dir).iterdir()) == []
        assert list(Path(options.normalized_data_dir).iterdir()) == []
        assert (download_dir / "pages" / "page1.html").exists()
        assert (download_dir / "index.json").exists()

    @pytest.mark.asyncio
    async def test_normalizer_receives_directories(self, orchestrator, options, download_dir):
        await orchestrator.run_full_pipeline(today=ARCHIVE_DAY)

        assert orchestrator.normalizer.configs == [
            {
                "raw_data_dir": options.raw_data_dir,
                "normalized_data_dir": options.normalized_data_dir,
                "data_file": "dataset.json",
            }
        ]

    @pytest.mark.asyncio
    async def test_download_failure_skips_remaining_stages(self, options):
        """Test a failed acquire short-circuits the run by default."""
        normalizer = RecordingNormalizer()
        orchestrator = PipelineOrchestrator(
            options,
            normalizer=normalizer,
            loader=RecordingLoader(),
            session=make_session(get_response=make_response(status=503)),
        )

        result = await orchestrator.run_full_pipeline(today=ARCHIVE_DAY)

        assert result.success is False
        acquire = result.get(Stage.ACQUIRE)
        assert acquire.status == StageStatus.FAILED
        assert acquire.error_type == "TransportError"
        assert "HTTP 503" in acquire.error
        for stage in (Stage.NORMALIZE, Stage.LOAD, Stage.ARCHIVE):
            skipped = result.get(stage)
            assert skipped.status == StageStatus.SKIPPED
            assert skipped.details["reason"] == "acquire failed"
        assert normalizer.configs == []
        assert not Path(options.archived_dir).exists()

    @pytest.mark.asyncio
    async def test_continue_on_stage_failure(self, options, download_dir):
        """Test the log-and-continue policy keeps running later stages."""
        continuing = options.model_copy(update={"continue_on_stage_failure": True})
        orchestrator = PipelineOrchestrator(
            continuing,
            normalizer=RecordingNormalizer(),
            loader=FailingLoader(),
            session=make_session(get_response=make_response(body=b"x")),
        )

        result = await orchestrator.run_full_pipeline(today=ARCHIVE_DAY)

        assert result.success is False
        assert result.get(Stage.LOAD).status == StageStatus.FAILED
        assert result.get(Stage.LOAD).error_type == "CollaboratorError"
        assert result.get(Stage.ARCHIVE).status == StageStatus.SUCCESS
        dated = Path(options.archived_dir) / "2024" / "03" / "07"
        assert (dated / "raw" / "dataset.json").exists()

    @pytest.mark.asyncio
    async def test_unconfigured_normalizer_fails_stage(self, options, session):
        orchestrator = PipelineOrchestrator(options, loader=RecordingLoader(), session=session)

        result = await orchestrator.normalize()

        assert result.status == StageStatus.FAILED
        assert result.error_type == "CollaboratorError"
        assert "No normalizer configured" in result.error

    def test_configured_loader_is_loaded_once_per_orchestrator(self, options):
        configured = options.model_copy(update={"loader": "some.module.Loader"})
        first_loader, second_loader = RecordingLoader(), RecordingLoader()

        with patch(
            "dataset_pipeline.pipelines.orchestrator.load_collaborator",
            side_effect=[first_loader, second_loader],
        ) as mock_load:
            first = PipelineOrchestrator(configured)
            second = PipelineOrchestrator(configured)

            assert first.loader is first_loader
            assert first.loader is first_loader
            assert second.loader is second_loader

        assert mock_load.call_count == 2
        mock_load.assert_called_with("some.module.Loader", "loader")

    @pytest.mark.asyncio
    async def test_unexpected_error_never_escapes(self, orchestrator):
        with patch(
            "dataset_pipeline.pipelines.orchestrator.relocate",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            result = await orchestrator.archive(today=ARCHIVE_DAY)

        assert result.status == StageStatus.FAILED
        assert result.error_type == "RuntimeError"
        assert result.error == "boom"
        assert result.completed_at is not None


class TestArchiveStage:
    """Test archive stage layout and same-day reruns."""

    def _populate(self, options, raw: str, normalized: str):
        raw_dir = Path(options.raw_data_dir)
        norm_dir = Path(options.normalized_data_dir)
        raw_dir.mkdir(parents=True, exist_ok=True)
        norm_dir.mkdir(parents=True, exist_ok=True)
        (raw_dir / "dataset.json").write_text(raw)
        (norm_dir / "normalized.json").write_text(normalized)

    @pytest.mark.asyncio
    async def test_archive_twice_same_day(self, options):
        Path(options.download_dir).mkdir(parents=True)
        (Path(options.download_dir) / "snapshot.html").write_text("snap")
        orchestrator = PipelineOrchestrator(options)

        self._populate(options, "first raw", "first norm")
        first = await orchestrator.archive(today=ARCHIVE_DAY)
        self._populate(options, "second raw", "second norm")
        second = await orchestrator.archive(today=ARCHIVE_DAY)

        assert first.status == StageStatus.SUCCESS
        assert second.status == StageStatus.SUCCESS
        assert second.details["raw"]["overwritten"] == ["dataset.json"]

        dated = Path(options.archived_dir) / "2024" / "03" / "07"
        assert (dated / "raw" / "dataset.json").read_text() == "second raw"
        assert (dated / "normalized" / "normalized.json").read_text() == "second norm"
        assert (dated / "download" / "snapshot.html").read_text() == "snap"

    @pytest.mark.asyncio
    async def test_relative_archive_layout(self, tmp_path, monkeypatch, options):
        """Test ARCHIVED_DIR="archived" with no overrides."""
        monkeypatch.chdir(tmp_path)
        relative = options.model_copy(update={"archived_dir": "archived"})
        self._populate(relative, "raw", "norm")
        Path(relative.download_dir).mkdir(parents=True)
        (Path(relative.download_dir) / "page.html").write_text("page")

        result = await PipelineOrchestrator(relative).archive(today=ARCHIVE_DAY)

        assert result.details["destination"] == str(Path("archived/2024/03/07"))
        for subtree in ("raw", "normalized", "download"):
            assert (tmp_path / "archived" / "2024" / "03" / "07" / subtree).is_dir()
        assert (Path(relative.download_dir) / "page.html").exists()

    @pytest.mark.asyncio
    async def test_skip_archive_download(self, options):
        self._populate(options, "raw", "norm")
        skipping = options.model_copy(update={"skip_archive_download": True})

        result = await PipelineOrchestrator(skipping).archive(today=ARCHIVE_DAY)

        assert result.status == StageStatus.SUCCESS
        assert result.details["download"] == {"skipped": True}
        dated = Path(options.archived_dir) / "2024" / "03" / "07"
        assert (dated / "raw").is_dir()
        assert not (dated / "download").exists()

    @pytest.mark.asyncio
    async def test_missing_working_dirs_are_not_fatal(self, options):
        result = await PipelineOrchestrator(options).archive(today=ARCHIVE_DAY)

        assert result.status == StageStatus.SUCCESS
        assert result.details["raw"]["error"] is not None
        assert result.details["normalized"]["error"] is not None
        assert result.details["download"]["copied"] is False

    @pytest.mark.asyncio
    async def test_archive_overrides(self, options, tmp_path):
        self._populate(options, "raw", "norm")
        overridden = options.model_copy(
            update={"archived_raw_data_dir": str(tmp_path / "custom_raw")}
        )

        result = await PipelineOrchestrator(overridden).archive(today=ARCHIVE_DAY)

        assert result.details["raw"]["destination"] == str(tmp_path / "custom_raw")
        assert (tmp_path / "custom_raw" / "dataset.json").read_text() == "raw"


class TestTriggerScrape:
    @pytest.mark.asyncio
    async def test_trigger_with_config_file(self, options, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"INPUT": {"startUrls": ["https://a.example.com"]}}))
        daily = options.model_copy(update={"daily": True, "task_config_file": str(config_file)})
        session = make_session(post_response=make_response(status=201))

        result = await PipelineOrchestrator(daily, session=session).trigger_scrape(
            today=ARCHIVE_DAY
        )

        assert result.status == StageStatus.SUCCESS
        assert result.stage == Stage.TRIGGER
        task_input = result.details["task_input"]
        assert task_input["startUrls"] == ["https://a.example.com"]
        assert task_input["startDate"] == "03/07/2024"
        assert task_input["maxRequestsPerCrawl"] == 100

    @pytest.mark.asyncio
    async def test_misconfigured_schedule_fails_without_submitting(self, options):
        session = make_session(post_response=make_response(status=201))

        result = await PipelineOrchestrator(options, session=session).trigger_scrape(
            base_config={"startUrls": []}
        )

        assert result.status == StageStatus.FAILED
        assert result.error_type == "ConfigurationError"
        session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_config_file(self, options, tmp_path):
        daily = options.model_copy(
            update={"daily": True, "task_config_file": str(tmp_path / "missing.json")}
        )

        result = await PipelineOrchestrator(daily, session=make_session()).trigger_scrape()

        assert result.status == StageStatus.FAILED
        assert "not found" in result.error


class TestPipelineStatus:
    def test_status_lists_directories_and_archives(self, options):
        Path(options.raw_data_dir).mkdir(parents=True)
        (Path(options.raw_data_dir) / "dataset.json").write_text("{}")
        (Path(options.archived_dir) / "2024" / "03" / "07").mkdir(parents=True)

        status = PipelineOrchestrator(options).get_pipeline_status()

        assert status["archived_days"] == ["2024-03-07"]
        assert status["directories"]["raw_data_dir"]["entries"] == 1
        assert status["directories"]["download_dir"]["exists"] is False
