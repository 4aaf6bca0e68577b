"""阶段共用的操作片段"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from hostprep.core.models import BenignFailure

if TYPE_CHECKING:
    from hostprep.core.context import RunContext
    from hostprep.core.models import OperationOutcome

CLONE = "克隆"

# 临时目录里已有上次中断留下的检出
CLONE_EXISTS = BenignFailure(
    reason="检出目录已存在，沿用现有代码",
    pattern=r"already exists and is not an empty directory",
    returncodes=(128,),
    operation=CLONE,
)


def clone(ctx: RunContext, url: str, dest: Path) -> Path:
    """浅克隆代码仓到 dest"""
    ctx.run(f"{CLONE} {dest.name}", ["git", "clone", "--depth", "1", url, str(dest)])
    return dest


def apt_get(ctx: RunContext, description: str, *args: str) -> OperationOutcome:
    return ctx.run(description, ["apt-get", *args])


def prepend_path(directory: str) -> dict[str, str]:
    """返回把 directory 放在 PATH 最前面的环境变量覆盖"""
    return {"PATH": f"{directory}{os.pathsep}{os.environ.get('PATH', '')}"}
