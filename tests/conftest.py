"""测试共享 fixture — 脚本化命令后端 + 运行上下文

  ScriptedBackend          make_ctx()                 测试用例
  ┌──────────────┐     ┌──────────────────┐     ┌────────────────────────┐
  │ on("apt-get  │────>│ StepExecutor     │<────│ ctx = make_ctx()       │
  │   remove",   │     │ ResourceTracker  │     │ ctx.run("...", [...])  │
  │   rc=100)    │     │ RunContext       │     │ assert backend.calls   │
  └──────────────┘     └──────────────────┘     └────────────────────────┘

ScriptedBackend 按命令前缀匹配返回预设结果，不启动真实子进程；
未匹配的命令一律返回成功。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Union

import pytest

from hostprep.core.config import Config
from hostprep.core.context import RunContext
from hostprep.core.executor import StepExecutor
from hostprep.core.identity import Identity
from hostprep.core.models import Stage
from hostprep.core.resources import ResourceTracker
from hostprep.utils.shell import CommandResult, format_command

Responder = Union[CommandResult, Callable[[list, dict], CommandResult]]


class ScriptedBackend:
    """按命令前缀返回预设结果的命令后端"""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._rules: list[tuple[str, Responder]] = []

    def on(
        self, prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "",
        *, action: Callable[[list, dict], None] | None = None,
    ) -> ScriptedBackend:
        """登记响应：命令文本以 prefix 开头时返回给定结果，可附带副作用"""
        def respond(args: list, call: dict) -> CommandResult:
            if action is not None:
                action(args, call)
            return CommandResult(returncode=returncode, stdout=stdout, stderr=stderr)
        self._rules.append((prefix, respond))
        return self

    def execute(self, cmd, *, cwd=None, env=None, timeout=None) -> CommandResult:
        args = list(cmd) if isinstance(cmd, list) else cmd.split()
        text = format_command(cmd)
        call = {"cmd": text, "args": args, "cwd": cwd, "env": env, "timeout": timeout}
        self.calls.append(call)
        for prefix, respond in self._rules:
            if text.startswith(prefix):
                return respond(args, call)
        return CommandResult(returncode=0, stdout="", stderr="")

    @property
    def commands(self) -> list[str]:
        return [c["cmd"] for c in self.calls]


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI 会调用 setup_logging 重置根日志器，测试后恢复 pytest 自己的 handlers"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    tmp_root = tmp_path / "tmp"
    tmp_root.mkdir()
    return Config(
        tmp_root=str(tmp_root),
        gdm_rules_file=str(tmp_path / "61-gdm.rules"),
        firmware_dir=str(tmp_path / "firmware"),
        cargo_bin=str(tmp_path / "cargo-bin"),
        command_env={},
    )


@pytest.fixture
def identity() -> Identity:
    return Identity(privileged_user="root", invoking_user="alice")


@pytest.fixture
def make_ctx(backend, config, identity):
    """构建 (RunContext, StepExecutor, ResourceTracker)，executor 已进入给定阶段"""

    def _make(stage: Stage | None = None):
        executor = StepExecutor(backend)
        resources = ResourceTracker()
        ctx = RunContext.build(identity, config, executor, resources)
        if stage is not None:
            executor.enter_stage(stage)
        return ctx, executor, resources

    return _make


@pytest.fixture
def make_stage():
    """快速构造阶段：body 缺省为记录调用后返回成功"""

    def _make(stage_id: str, body=None, benign=(), trace: list | None = None) -> Stage:
        def default_body(ctx):
            return None

        actual = body or default_body

        def traced(ctx):
            if trace is not None:
                trace.append(stage_id)
            return actual(ctx)

        return Stage(id=stage_id, description=f"测试阶段 {stage_id}", body=traced, benign=tuple(benign))

    return _make
