"""运行上下文测试：按用户命名的临时目录必须是本次运行新建的私有目录"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from hostprep.core import context as context_mod
from hostprep.core.exceptions import CommandFailed


@pytest.fixture
def kernel_ctx(make_ctx, make_stage):
    ctx, executor, resources = make_ctx(make_stage("kernel"))
    return ctx, executor, resources, ctx.path("kernel-scratch")


class TestScratch:
    def test_fresh_private_directory(self, kernel_ctx) -> None:
        ctx, _, resources, path = kernel_ctx
        work = ctx.scratch("kernel-scratch")

        assert work == path
        assert work.name == "kernel_install_alice"
        assert stat.S_IMODE(work.stat().st_mode) == 0o700
        assert resources.get("kernel-scratch").path == work

    def test_second_call_reuses_directory(self, kernel_ctx) -> None:
        ctx, _, _, _ = kernel_ctx
        work = ctx.scratch("kernel-scratch")
        (work / "checkout").mkdir()

        assert ctx.scratch("kernel-scratch") == work
        assert (work / "checkout").is_dir()

    def test_stale_own_directory_is_emptied(self, kernel_ctx) -> None:
        ctx, _, _, path = kernel_ctx
        path.mkdir()
        (path / "evil_planted.deb").write_bytes(b"x")

        work = ctx.scratch("kernel-scratch")

        assert list(work.iterdir()) == []

    def test_symlink_rejected_and_target_untouched(self, kernel_ctx, tmp_path: Path) -> None:
        ctx, _, resources, path = kernel_ctx
        victim = tmp_path / "victim"
        victim.mkdir()
        (victim / "keep.txt").write_text("k")
        path.symlink_to(victim, target_is_directory=True)

        with pytest.raises(CommandFailed) as exc:
            ctx.scratch("kernel-scratch")

        assert exc.value.record.operation.startswith("创建临时目录")
        assert resources.get("kernel-scratch") is None
        assert path.is_symlink()
        assert (victim / "keep.txt").read_text() == "k"

    def test_regular_file_rejected(self, kernel_ctx) -> None:
        ctx, _, resources, path = kernel_ctx
        path.write_text("not a directory")

        with pytest.raises(CommandFailed):
            ctx.scratch("kernel-scratch")
        assert resources.get("kernel-scratch") is None
        assert path.read_text() == "not a directory"

    def test_foreign_owner_rejected(self, kernel_ctx, monkeypatch) -> None:
        ctx, _, resources, path = kernel_ctx
        path.mkdir()
        (path / "evil_planted.deb").write_bytes(b"x")
        owner = path.stat().st_uid
        monkeypatch.setattr(context_mod.os, "geteuid", lambda: owner + 1)

        with pytest.raises(CommandFailed) as exc:
            ctx.scratch("kernel-scratch")

        assert "属主" in exc.value.record.reason
        assert resources.get("kernel-scratch") is None
        assert (path / "evil_planted.deb").exists()

    def test_unsafe_path_survives_reclaim(self, kernel_ctx, tmp_path: Path) -> None:
        ctx, _, resources, path = kernel_ctx
        victim = tmp_path / "victim"
        victim.mkdir()
        path.symlink_to(victim, target_is_directory=True)

        with pytest.raises(CommandFailed):
            ctx.scratch("kernel-scratch")
        resources.reclaim_all()

        assert path.is_symlink()
        assert victim.is_dir()


class TestMkdtemp:
    def test_random_name_under_tmp_root(self, make_ctx, config) -> None:
        ctx, _, resources = make_ctx()
        staging = ctx.mkdtemp("firmware-staging")

        assert staging.parent == Path(config.tmp_root)
        assert staging.name.startswith("hostprep-firmware-staging-alice-")
        assert resources.get("firmware-staging").path == staging
        assert os.access(staging, os.W_OK)
