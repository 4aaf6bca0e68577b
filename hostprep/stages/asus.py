"""阶段 4: 编译安装 ASUS 控制工具 (supergfxctl / asusctl)"""

from __future__ import annotations

import logging
import shutil
from typing import TYPE_CHECKING

from hostprep.core.models import Stage, StageResult
from hostprep.stages._shared import CLONE_EXISTS, clone, prepend_path

if TYPE_CHECKING:
    from hostprep.core.context import RunContext

logger = logging.getLogger(__name__)

# (名称, 配置中的仓库字段, 安装后启用的服务)
TOOLS = (
    ("supergfxctl", "supergfxctl_repo", "supergfxd.service"),
    ("asusctl", "asusctl_repo", ""),
)


def ensure_rust(ctx: RunContext, env: dict[str, str]) -> None:
    if shutil.which("rustc", path=env["PATH"]) is not None:
        logger.info("Rust 工具链已就绪")
        return
    logger.info("未找到 rustc，通过 rustup 安装")
    ctx.run(
        "安装 Rust 工具链 (rustup)",
        [
            "bash", "-o", "pipefail", "-c",
            f"curl --proto '=https' --tlsv1.2 -sSf {ctx.config.rustup_url} | sh -s -- -y",
        ],
        env=env,
    )


def install_asus_utils(ctx: RunContext) -> StageResult:
    cfg = ctx.config
    env = prepend_path(cfg.cargo_bin)
    ensure_rust(ctx, env)

    build = ctx.scratch("build-scratch")
    for name, repo_field, service in TOOLS:
        src = clone(ctx, getattr(cfg, repo_field), build / name)
        ctx.run(f"编译 {name}", ["make"], cwd=src, env=env)
        ctx.run(f"安装 {name}", ["make", "install"], cwd=src, env=env)
        if service:
            ctx.run(f"启用并启动 {service}", ["systemctl", "enable", "--now", service])

    ctx.run(
        f"将用户 {ctx.invoking_user} 加入 {cfg.user_group} 组",
        ["usermod", "-a", "-G", cfg.user_group, ctx.invoking_user],
    )
    return StageResult.completed(", ".join(name for name, _, _ in TOOLS) + " 已安装")


STAGE = Stage(
    id="asus-utils",
    description="编译安装 supergfxctl / asusctl 并设置用户权限",
    body=install_asus_utils,
    benign=(CLONE_EXISTS,),
)
