"""Tests for the pipeline stage abstract base and the concrete stage names."""

from __future__ import annotations

import pytest

from cityleague_pipeline.pipeline.base import PipelineStage
from cityleague_pipeline.pipeline.probe import ProbeStage
from cityleague_pipeline.pipeline.rankings import RankingsStage
from cityleague_pipeline.pipeline.snapshots import SnapshotStage


class TestPipelineStageABC:
    def test_cannot_instantiate_base_directly(self):
        with pytest.raises(TypeError):
            PipelineStage(config=None, store=None)  # type: ignore

    def test_subclass_without_execute_raises(self):
        class IncompleteStage(PipelineStage):
            stage_name = "incomplete"

        with pytest.raises(TypeError):
            IncompleteStage(config=None, store=None)  # type: ignore

    def test_run_passes_kwargs_and_returns_result(self, config, store):
        class EchoStage(PipelineStage):
            stage_name = "echo"

            def _execute(self, date_key: str) -> str:
                self.logs.info(f"echo {date_key}")
                return date_key[::-1]

        stage = EchoStage(config, store)
        assert stage.run(date_key="20250307") == "70305202"
        assert stage.logs.lines == ["echo 20250307"]

    def test_run_reraises(self, config, store):
        class BrokenStage(PipelineStage):
            stage_name = "broken"

            def _execute(self) -> None:
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            BrokenStage(config, store).run()


class TestStageNames:
    def test_probe(self):
        assert ProbeStage.stage_name == "probe"

    def test_rankings(self):
        assert RankingsStage.stage_name == "rankings"

    def test_snapshots(self):
        assert SnapshotStage.stage_name == "snapshots"
