"""Shell 命令执行工具 — 统一子进程调用

通过 CommandBackend 协议抽象子进程执行，方便测试替换。
本模块只负责"跑命令拿结果"，不解释退出码；解释交给阶段执行器。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

# 与 coreutils timeout(1) 保持一致
TIMEOUT_RETURNCODE = 124


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行后端协议
# =========================================================================

class CommandBackend(Protocol):
    """命令执行后端协议 — 抽象子进程调用

    测试时可注入脚本化实现，无需 patch subprocess。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


def split_command(cmd: str | list[str]) -> list[str]:
    """字符串命令按 shell 规则拆分，列表原样返回"""
    return shlex.split(cmd) if isinstance(cmd, str) else list(cmd)


def format_command(cmd: str | list[str]) -> str:
    """命令的可读形式，用于日志和失败记录"""
    return cmd if isinstance(cmd, str) else shlex.join(cmd)


# =========================================================================
# 默认实现: 本地执行
# =========================================================================

class LocalBackend:
    """本地子进程执行后端（默认实现）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = split_command(cmd)
        try:
            r = subprocess.run(
                args, capture_output=True, text=True,
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=TIMEOUT_RETURNCODE, stdout="",
                stderr=f"命令超时 ({timeout}s)",
            )
        except FileNotFoundError as e:
            # 与 shell 的 "command not found" 保持一致
            return CommandResult(returncode=127, stdout="", stderr=str(e))
        for line in r.stdout.splitlines():
            logger.debug("  | %s", line)
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )
