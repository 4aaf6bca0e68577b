"""清理守护测试：只执行一次、状态码在清理前确定、清理不改变裁决"""

from __future__ import annotations

import logging
import signal
from pathlib import Path

import pytest

from hostprep.core.cleanup import GUIDANCE_FAILURE, GUIDANCE_SUCCESS, CleanupGuarantor
from hostprep.core.exceptions import RunInterrupted, StartupError
from hostprep.core.executor import StepExecutor
from hostprep.core.models import VerdictKind
from hostprep.core.resources import ResourceTracker
from hostprep.core.signals import CancelToken


@pytest.fixture
def scratch(tmp_path: Path) -> tuple[ResourceTracker, Path]:
    d = tmp_path / "scratch"
    d.mkdir()
    rt = ResourceTracker()
    rt.register("scratch", d)
    return rt, d


class TestNormalExit:
    def test_success(self, scratch, caplog) -> None:
        caplog.set_level(logging.INFO)
        rt, d = scratch
        with CleanupGuarantor(rt) as guard:
            guard.set_status(0)

        assert guard.invocations == 1
        assert guard.exit_code == 0
        assert guard.verdict.kind == VerdictKind.SUCCESS
        assert not d.exists()
        assert GUIDANCE_SUCCESS in caplog.text

    def test_engine_failure_status(self, scratch, backend, caplog) -> None:
        rt, d = scratch
        capture = StepExecutor(backend).capture
        capture.capture("kernel", returncode=5, reason="dpkg failed")
        with CleanupGuarantor(rt, capture) as guard:
            guard.set_status(5)

        assert guard.exit_code == 5
        assert guard.verdict.kind == VerdictKind.FAILURE
        assert guard.verdict.code == 5
        assert not d.exists()
        assert GUIDANCE_FAILURE in caplog.text
        assert "失败记录: 阶段=kernel" in caplog.text


class TestAbnormalExit:
    def test_unexpected_exception_absorbed(self, scratch, backend) -> None:
        rt, d = scratch
        capture = StepExecutor(backend).capture
        with CleanupGuarantor(rt, capture) as guard:
            raise RuntimeError("bug")

        assert guard.exit_code == 1
        assert guard.verdict.kind == VerdictKind.FAILURE
        assert capture.last.stage_id == "orchestrator"
        assert not d.exists()

    def test_startup_fatal(self, backend) -> None:
        capture = StepExecutor(backend).capture
        with CleanupGuarantor(ResourceTracker(), capture) as guard:
            raise StartupError("not root")

        assert guard.invocations == 1
        assert guard.exit_code == 1
        assert guard.verdict.kind == VerdictKind.FAILURE
        assert capture.last.stage_id == "startup"
        assert capture.last.reason == "not root"

    def test_system_exit_code_preserved(self, scratch) -> None:
        rt, d = scratch
        with CleanupGuarantor(rt) as guard:
            raise SystemExit(3)
        assert guard.exit_code == 3
        assert not d.exists()

    def test_system_exit_none_is_success(self) -> None:
        with CleanupGuarantor(ResourceTracker()) as guard:
            raise SystemExit(None)
        assert guard.exit_code == 0
        assert guard.verdict.kind == VerdictKind.SUCCESS

    def test_run_interrupted(self, scratch) -> None:
        rt, d = scratch
        with CleanupGuarantor(rt) as guard:
            raise RunInterrupted(signal.SIGTERM)
        assert guard.exit_code == 128 + signal.SIGTERM
        assert guard.verdict.kind == VerdictKind.FAILURE
        assert not d.exists()

    def test_keyboard_interrupt_uses_token_signal(self) -> None:
        token = CancelToken()
        token.request(signal.SIGHUP)
        with CleanupGuarantor(ResourceTracker(), token=token) as guard:
            raise KeyboardInterrupt
        assert guard.exit_code == 128 + signal.SIGHUP

    def test_keyboard_interrupt_default(self) -> None:
        with CleanupGuarantor(ResourceTracker()) as guard:
            raise KeyboardInterrupt
        assert guard.exit_code == 130


class TestExactlyOnce:
    def test_finalize_twice_returns_first_verdict(self, scratch) -> None:
        rt, _ = scratch
        guard = CleanupGuarantor(rt)
        first = guard.finalize(0)
        second = guard.finalize(9)
        assert first is second
        assert guard.invocations == 1
        assert guard.exit_code == 0

    def test_exit_after_manual_finalize(self, scratch) -> None:
        rt, _ = scratch
        with CleanupGuarantor(rt) as guard:
            guard.finalize(2)
        assert guard.invocations == 1
        assert guard.exit_code == 2


class TestCleanupNeverMasksVerdict:
    def test_reclaim_failure_keeps_success(self, tmp_path, monkeypatch, caplog) -> None:
        rt = ResourceTracker()
        rt.register("stuck", tmp_path / "stuck")
        (tmp_path / "stuck").mkdir()

        def broken_reclaim():
            raise RuntimeError("unexpected")

        monkeypatch.setattr(rt, "reclaim_all", broken_reclaim)
        with CleanupGuarantor(rt) as guard:
            guard.set_status(0)

        assert guard.exit_code == 0
        assert guard.verdict.kind == VerdictKind.SUCCESS
        assert "未能删除" in caplog.text

    def test_reclaim_failure_keeps_failure_code(self, tmp_path, monkeypatch) -> None:
        rt = ResourceTracker()

        def broken_reclaim():
            raise OSError("io")

        monkeypatch.setattr(rt, "reclaim_all", broken_reclaim)
        with CleanupGuarantor(rt) as guard:
            guard.set_status(7)
        assert guard.exit_code == 7


class TestFailureRecordForcesFailure:
    def test_system_exit_zero_after_recorded_failure(self, scratch, backend, caplog) -> None:
        rt, d = scratch
        capture = StepExecutor(backend).capture
        with CleanupGuarantor(rt, capture) as guard:
            capture.capture("kernel", returncode=1, reason="SystemExit: 0")
            raise SystemExit(0)

        assert guard.exit_code == 1
        assert guard.verdict.kind == VerdictKind.FAILURE
        assert GUIDANCE_FAILURE in caplog.text
        assert GUIDANCE_SUCCESS not in caplog.text


class TestInterruptDuringCleanup:
    def test_keyboard_interrupt_in_reclaim_still_gives_verdict(self, tmp_path, monkeypatch, caplog) -> None:
        rt = ResourceTracker()
        rt.register("stuck", tmp_path / "stuck")
        (tmp_path / "stuck").mkdir()

        def interrupted_reclaim():
            raise KeyboardInterrupt

        monkeypatch.setattr(rt, "reclaim_all", interrupted_reclaim)
        with CleanupGuarantor(rt) as guard:
            guard.set_status(4)

        assert guard.invocations == 1
        assert guard.verdict.kind == VerdictKind.FAILURE
        assert guard.exit_code == 4
        assert GUIDANCE_FAILURE in caplog.text

    def test_finalize_marks_token_cleaning(self) -> None:
        token = CancelToken()
        CleanupGuarantor(ResourceTracker(), token=token).finalize(0)
        assert token.cleaning
