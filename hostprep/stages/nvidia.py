"""阶段 3: NVIDIA 驱动（DKMS 针对新内核编译）"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from hostprep.core.models import BenignFailure, Stage, StageResult
from hostprep.stages._shared import apt_get
from hostprep.utils.yaml_io import atomic_write

if TYPE_CHECKING:
    from hostprep.core.context import RunContext

logger = logging.getLogger(__name__)

PURGE = "移除可能冲突的 NVIDIA 驱动"

GDM_WAYLAND_RULE = 'DRIVER=="nvidia", RUN+="/usr/lib/gdm3/gdm-disable-wayland"'

BENIGN = (
    BenignFailure(
        reason="没有匹配的 NVIDIA 软件包需要移除",
        pattern=r"Unable to locate package|Couldn't find any package",
        returncodes=(100,),
        operation=PURGE,
    ),
)


def comment_out_rule(path: Path, rule: str) -> bool:
    """注释掉 path 中生效的 rule 行，返回是否有改动"""
    if not path.exists():
        return False
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    changed = False
    for i, line in enumerate(lines):
        stripped = line.lstrip()
        if rule in stripped and not stripped.startswith("#"):
            lines[i] = "#" + stripped
            changed = True
    if changed:
        atomic_write(path, "".join(lines))
    return changed


def install_nvidia(ctx: RunContext) -> StageResult:
    cfg = ctx.config
    driver = f"nvidia-driver-{cfg.nvidia_driver_version}"

    apt_get(ctx, PURGE, "remove", "--purge", "-y", "^nvidia-.*")
    apt_get(ctx, "清理无用依赖", "autoremove", "-y")
    ctx.run("添加显卡驱动 PPA", ["add-apt-repository", "-y", cfg.nvidia_ppa])
    apt_get(ctx, "刷新软件包索引", "update")
    apt_get(ctx, f"安装 {driver}（开始 DKMS 编译）", "install", "-y", driver, "nvidia-settings")

    rules = Path(cfg.gdm_rules_file)
    if ctx.call("注释 GDM 的 NVIDIA Wayland 禁用规则", comment_out_rule, rules, GDM_WAYLAND_RULE):
        logger.info("已注释 GDM Wayland 禁用规则: %s", rules)
    else:
        logger.info("未找到生效的 GDM Wayland 禁用规则（可能已注释）: %s", rules)
    return StageResult.completed(f"{driver} 已安装")


STAGE = Stage(
    id="nvidia",
    description="安装 NVIDIA 驱动并修复 GDM/Wayland 冲突",
    body=install_nvidia,
    benign=BENIGN,
)
