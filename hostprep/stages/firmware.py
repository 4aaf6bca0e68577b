"""阶段 5: 部署 Cirrus 音频固件"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from hostprep.core.models import Stage, StageResult
from hostprep.stages._shared import CLONE_EXISTS, clone

if TYPE_CHECKING:
    from hostprep.core.context import RunContext


def deploy_firmware(ctx: RunContext) -> StageResult:
    cfg = ctx.config
    build = ctx.scratch("build-scratch")
    src = clone(ctx, cfg.firmware_repo, build / "linux-firmware")

    staging = ctx.mkdtemp("firmware-staging")
    ctx.run("暂存固件 (make install)", ["make", "install", f"DESTDIR={staging}"], cwd=src)

    source = staging / "lib" / "firmware" / cfg.firmware_subdir
    if not source.is_dir():
        return StageResult.failed(f"暂存目录中没有 {cfg.firmware_subdir} 固件: {source}")
    target = Path(cfg.firmware_dir) / cfg.firmware_subdir
    ctx.call(
        f"复制 {cfg.firmware_subdir} 固件到 {cfg.firmware_dir}",
        shutil.copytree, source, target, dirs_exist_ok=True,
    )
    return StageResult.completed(f"固件已部署到 {target}")


STAGE = Stage(
    id="firmware",
    description="部署 Cirrus 音频固件",
    body=deploy_firmware,
    benign=(CLONE_EXISTS,),
)
