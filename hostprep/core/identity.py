"""特权身份识别

- detect_identity: 确认以 root 运行，并找出发起装机的非特权用户
- ensure_privileged: 非 root 且有 sudo 时通过 sudo 重新执行自身

身份无法确认属于启动期致命错误，不是阶段失败。
"""

from __future__ import annotations

import logging
import os
import pwd
import shutil
import sys
from dataclasses import dataclass
from typing import Mapping

from hostprep.core.exceptions import StartupError

logger = logging.getLogger(__name__)

# sudo 默认重置环境变量，重新执行时保留日志配置
PRESERVED_ENV = ("HOSTPREP_LOG_LEVEL", "HOSTPREP_LOG_JSON")


@dataclass(frozen=True)
class Identity:
    privileged_user: str
    invoking_user: str


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        raise StartupError(f"无法解析 uid {uid} 对应的用户") from None


def detect_identity(environ: Mapping[str, str] | None = None) -> Identity:
    """确认特权身份并返回 (特权用户, 发起用户)"""
    env = os.environ if environ is None else environ
    euid = os.geteuid()
    if euid != 0:
        raise StartupError(f"需要 root 权限运行 (当前 euid={euid})，请使用 sudo")

    privileged = _user_name(euid)
    invoking = env.get("SUDO_USER", "").strip() or privileged
    if invoking != privileged:
        try:
            pwd.getpwnam(invoking)
        except KeyError:
            raise StartupError(f"SUDO_USER 指向不存在的用户: {invoking}") from None

    logger.info("特权身份已确认: %s (发起用户: %s)", privileged, invoking)
    return Identity(privileged_user=privileged, invoking_user=invoking)


def ensure_privileged(argv: list[str] | None = None) -> None:
    """非 root 时用 sudo 重新执行当前程序（exec 替换进程，不返回）

    找不到 sudo 时直接返回，由 detect_identity 报告启动期致命错误。
    """
    if os.geteuid() == 0:
        return
    sudo = shutil.which("sudo")
    if sudo is None:
        logger.error("当前不是 root，且未找到 sudo")
        return
    args = sys.argv[1:] if argv is None else argv
    logger.info("当前不是 root，通过 sudo 重新执行")
    os.execvp(sudo, [
        sudo, f"--preserve-env={','.join(PRESERVED_ENV)}",
        sys.executable, "-m", "hostprep", *args,
    ])
