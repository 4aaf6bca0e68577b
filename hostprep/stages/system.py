"""阶段 1: 系统准备与核心依赖"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostprep.core.models import Stage, StageResult
from hostprep.stages._shared import apt_get

if TYPE_CHECKING:
    from hostprep.core.context import RunContext


def prepare_system(ctx: RunContext) -> StageResult:
    cfg = ctx.config
    for component in cfg.apt_components:
        ctx.run(f"启用软件源组件 {component}", ["add-apt-repository", "-y", component])
    apt_get(ctx, "刷新软件包索引", "update")
    apt_get(ctx, "安装核心依赖", "install", "-y", *cfg.apt_packages)
    apt_get(ctx, "系统完整升级", "full-upgrade", "-y")
    return StageResult.completed(f"已安装 {len(cfg.apt_packages)} 个依赖包")


STAGE = Stage(
    id="system-prep",
    description="系统准备：启用软件源、安装编译依赖、完整升级",
    body=prepare_system,
    benign=(),
)
