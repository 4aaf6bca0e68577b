"""阶段 2: 安装主线内核

从 Ubuntu mainline 归档下载 headers(2) / image / modules 四个 .deb，
dpkg 安装后修复依赖并更新 GRUB。
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from hostprep.core.models import Stage, StageResult
from hostprep.stages._shared import apt_get

if TYPE_CHECKING:
    from hostprep.core.context import RunContext

logger = logging.getLogger(__name__)

PACKAGE_PATTERNS = (
    "linux-headers-{version}-*-generic_*_{arch}.deb",
    "linux-headers-{version}-*_all.deb",
    "linux-image-unsigned-{version}-*-generic_*_{arch}.deb",
    "linux-modules-{version}-*-generic_*_{arch}.deb",
)


def package_patterns(version: str, arch: str) -> list[str]:
    return [p.format(version=version, arch=arch) for p in PACKAGE_PATTERNS]


def select_packages(work: Path, patterns: list[str]) -> tuple[list[Path], list[str]]:
    """只挑出与下载模式匹配的 .deb，返回 (待安装文件, 没有匹配文件的模式)"""
    files = sorted(p for p in work.iterdir() if p.is_file() and not p.is_symlink())
    selected = [f for f in files if any(fnmatch.fnmatchcase(f.name, pat) for pat in patterns)]
    ignored = [f.name for f in files if f.suffix == ".deb" and f not in selected]
    if ignored:
        logger.warning("忽略不属于本次内核的软件包: %s", ", ".join(ignored))
    missing = [pat for pat in patterns if not any(fnmatch.fnmatchcase(f.name, pat) for f in selected)]
    return selected, missing


def install_kernel(ctx: RunContext) -> StageResult:
    cfg = ctx.config
    version = cfg.kernel_full_version
    patterns = package_patterns(version, cfg.kernel_arch)
    work = ctx.scratch("kernel-scratch")

    ctx.run(
        f"下载内核 {version} 软件包",
        [
            "wget", "-q", "-r", "-l1", "-nd", "--no-parent", "-e", "robots=off",
            "-A", ",".join(patterns),
            f"{cfg.kernel_url}/{cfg.kernel_arch}/",
        ],
        cwd=work,
    )
    debs, missing = select_packages(work, patterns)
    if missing:
        return StageResult.failed(
            f"内核软件包不完整: 期望 {len(patterns)} 个，实际 {len(debs)} 个，"
            f"缺少 {', '.join(missing)}"
        )

    ctx.run(
        f"安装内核 {version}",
        ["dpkg", "-i", "--force-depends", *(str(d) for d in debs)],
        cwd=work,
    )
    apt_get(ctx, "修复 dpkg 安装后的依赖", "install", "-f", "-y")
    ctx.run("更新 GRUB 配置", ["update-grub"])
    return StageResult.completed(f"内核 {version} 已安装")


STAGE = Stage(
    id="kernel",
    description="安装主线内核并更新 GRUB",
    body=install_kernel,
    benign=(),
)
