"""
Unit tests for pipeline module: trigger gate and orchestrator
"""

import json
import os
import tempfile

import pytest

from core.exceptions import GenerationError, FetchError
from pipeline.orchestrator import PipelineOrchestrator, PipelineStatus
from pipeline.step import Step, StepResult
from pipeline.trigger import PushEvent, TriggerGate

from conftest import make_config


class TestPushEvent:
    """Tests for PushEvent"""

    def test_branch_from_ref(self):
        assert PushEvent(ref="refs/heads/main").branch == "main"
        assert PushEvent(ref="refs/heads/feature/x").branch == "feature/x"

    def test_tag_has_no_branch(self):
        assert PushEvent(ref="refs/tags/v1.0").branch is None
        assert PushEvent(ref="").branch is None

    def test_repository_url(self):
        event = PushEvent(ref="refs/heads/main", repository="octo/crate",
                          server_url="https://git.example.com/")
        assert event.repository_url == "https://git.example.com/octo/crate.git"

    def test_from_env_variables(self):
        event = PushEvent.from_env({
            "GITHUB_REF": "refs/heads/main",
            "GITHUB_SHA": "deadbeef",
            "GITHUB_REPOSITORY": "octo/crate",
        })
        assert event.branch == "main"
        assert event.sha == "deadbeef"
        assert event.repository == "octo/crate"
        assert event.server_url == "https://github.com"

    def test_from_env_payload_wins(self):
        """Should prefer the JSON event payload over plain variables"""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            json.dump({
                "ref": "refs/heads/main",
                "after": "cafebabe",
                "repository": {"full_name": "octo/other"},
            }, f)
            path = f.name
        try:
            event = PushEvent.from_env({
                "GITHUB_REF": "refs/heads/dev",
                "GITHUB_SHA": "deadbeef",
                "GITHUB_REPOSITORY": "octo/crate",
                "GITHUB_EVENT_PATH": path,
            })
        finally:
            os.unlink(path)
        assert event.ref == "refs/heads/main"
        assert event.sha == "cafebabe"
        assert event.repository == "octo/other"

    def test_from_env_broken_payload_ignored(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            f.write("{not json")
            path = f.name
        try:
            event = PushEvent.from_env({"GITHUB_REF": "refs/heads/main", "GITHUB_EVENT_PATH": path})
        finally:
            os.unlink(path)
        assert event.ref == "refs/heads/main"


class TestTriggerGate:
    """Tests for TriggerGate"""

    def test_matches_allowed_branch(self):
        gate = TriggerGate(["main"])
        assert gate.matches(PushEvent(ref="refs/heads/main"))

    @pytest.mark.parametrize("ref", [
        "refs/heads/dev",
        "refs/heads/main-backup",
        "refs/tags/main",
        "main",
        "",
    ])
    def test_rejects_everything_else(self, ref):
        assert not TriggerGate(["main"]).matches(PushEvent(ref=ref))

    def test_multiple_branches(self):
        gate = TriggerGate(["main", "release"])
        assert gate.matches(PushEvent(ref="refs/heads/release"))


class RecordingStep(Step):
    def __init__(self, name, log, error=None):
        self.name = name
        self.log = log
        self.error = error

    def run(self, ctx):
        self.log.append(self.name)
        if self.error is not None:
            raise self.error
        return StepResult(name=self.name, message="ok")

    def plan(self, ctx):
        return [[self.name]]


def make_steps(log, fail=None, error=None):
    names = ["fetch", "toolchain", "generate", "publish"]
    return [RecordingStep(n, log, error if n == fail else None) for n in names]


class TestPipelineOrchestrator:
    """Tests for PipelineOrchestrator"""

    def _orchestrator(self, workspace, steps, **config):
        return PipelineOrchestrator(make_config(**config), steps=steps, workspace=workspace)

    def test_non_matching_branch_runs_zero_steps(self, workspace):
        log = []
        orch = self._orchestrator(workspace, make_steps(log))
        state = orch.run(PushEvent(ref="refs/heads/dev", sha="1"))
        assert log == []
        assert state.status == PipelineStatus.SKIPPED
        assert state.succeeded

    def test_main_runs_steps_in_order(self, workspace, event):
        log = []
        orch = self._orchestrator(workspace, make_steps(log))
        state = orch.run(event)
        assert log == ["fetch", "toolchain", "generate", "publish"]
        assert state.step_names == log
        assert state.status == PipelineStatus.PUBLISHED
        assert state.succeeded

    def test_generation_failure_never_publishes(self, workspace, event):
        """Publish must not run after a failed generation"""
        log = []
        steps = make_steps(log, fail="generate", error=GenerationError("cargo doc failed"))
        state = self._orchestrator(workspace, steps).run(event)
        assert "publish" not in log
        assert state.status == PipelineStatus.ABORTED
        assert state.failed_step == "generate"
        assert "cargo doc failed" in state.error
        assert not state.succeeded

    def test_fetch_failure_stops_everything(self, workspace, event):
        log = []
        steps = make_steps(log, fail="fetch", error=FetchError("network down"))
        state = self._orchestrator(workspace, steps).run(event)
        assert log == ["fetch"]
        assert state.step_names == []

    def test_unexpected_error_aborts(self, workspace, event):
        log = []
        steps = make_steps(log, fail="toolchain", error=RuntimeError("disk full"))
        state = self._orchestrator(workspace, steps).run(event)
        assert state.status == PipelineStatus.ABORTED
        assert state.failed_step == "toolchain"
        assert "RuntimeError" in state.error
        assert "generate" not in log

    def test_status_after_each_step(self, workspace, event):
        """Should be FETCHING while the fetch runs, then advance per completed step"""
        started = []
        statuses = []
        log = []
        orch = self._orchestrator(workspace, make_steps(log))
        orch.set_callbacks(
            on_step_start=lambda i, s: started.append(orch.state.status),
            on_step_complete=lambda i, r: statuses.append(orch.state.status)
        )
        orch.run(event)
        assert started[0] == PipelineStatus.FETCHING
        assert statuses == [
            PipelineStatus.FETCHING,
            PipelineStatus.TOOLCHAIN_READY,
            PipelineStatus.GENERATED,
            PipelineStatus.PUBLISHED,
        ]

    def test_custom_branch_allow_list(self, workspace):
        log = []
        orch = self._orchestrator(workspace, make_steps(log), branches=["release"])
        orch.run(PushEvent(ref="refs/heads/main", sha="1"))
        assert log == []
        orch.run(PushEvent(ref="refs/heads/release", sha="1"))
        assert log[0] == "fetch"

    def test_plan(self, workspace, event):
        orch = self._orchestrator(workspace, make_steps([]))
        assert orch.plan(event) == [["fetch"], ["toolchain"], ["generate"], ["publish"]]
        assert orch.plan(PushEvent(ref="refs/heads/dev")) == []

    def test_stats(self, workspace, event):
        orch = self._orchestrator(workspace, make_steps([]))
        orch.run(event)
        stats = orch.get_stats()
        assert stats["status"] == "PUBLISHED"
        assert stats["completed_steps"] == ["fetch", "toolchain", "generate", "publish"]
        assert stats["failed_step"] is None
