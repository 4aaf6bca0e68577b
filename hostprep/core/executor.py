"""阶段操作执行器

职责:
- 执行外部命令 (run) 或进程内动作 (call)，返回退出码和操作描述
- 维护"最近一次尝试的操作"槽位（全进程唯一写入者）
- 非零退出码先按当前阶段的良性失败规则分类，未命中则同步触发失败现场捕获
- 每个操作开始前检查中断请求
"""

from __future__ import annotations

import inspect
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from hostprep.core.exceptions import CommandFailed, RunInterrupted
from hostprep.core.failure import FailureCapture
from hostprep.core.models import BenignFailure, Operation, OperationOutcome
from hostprep.utils.shell import CommandBackend, LocalBackend, format_command

if TYPE_CHECKING:
    from hostprep.core.models import Stage
    from hostprep.core.signals import CancelToken

logger = logging.getLogger(__name__)

# 定位调用方时跳过的框架内部模块
_INTERNAL_MODULES = frozenset({__name__, "hostprep.core.context", "hostprep.stages._shared"})


class OperationSlot:
    """最近一次尝试的操作，只有 StepExecutor 写入"""

    def __init__(self) -> None:
        self._operation: Operation | None = None

    @property
    def operation(self) -> Operation | None:
        return self._operation

    def record(self, operation: Operation) -> None:
        self._operation = operation


def _caller_source() -> str:
    """返回阶段代码中发起本次操作的位置 file:line"""
    frame = inspect.currentframe()
    try:
        while frame is not None:
            if frame.f_globals.get("__name__") not in _INTERNAL_MODULES:
                return f"{Path(frame.f_code.co_filename).name}:{frame.f_lineno}"
            frame = frame.f_back
        return ""
    finally:
        del frame


class StepExecutor:
    """阶段操作执行器"""

    def __init__(
        self,
        backend: CommandBackend | None = None,
        *,
        token: CancelToken | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> None:
        self.backend = backend or LocalBackend()
        self.token = token
        self.env = dict(env or {})
        self.timeout = timeout
        self.slot = OperationSlot()
        self.capture = FailureCapture(self.slot)
        self._stage: Stage | None = None
        self._step = 0
        self._warnings: list[str] = []

    @property
    def last_operation(self) -> Operation | None:
        return self.slot.operation

    @property
    def stage_id(self) -> str:
        return self._stage.id if self._stage else ""

    def enter_stage(self, stage: Stage) -> None:
        self._stage = stage
        self._step = 0
        self._warnings = []

    def leave_stage(self) -> list[str]:
        """离开阶段，返回本阶段被降级的良性失败"""
        warnings, self._warnings = self._warnings, []
        self._stage = None
        return warnings

    # ---- 操作 ----

    def run(
        self,
        description: str,
        cmd: str | list[str],
        *,
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> OperationOutcome:
        """执行外部命令"""
        work_dir = str(cwd) if cwd is not None else None
        op = self._begin(description, format_command(cmd), work_dir or "")
        result = self.backend.execute(
            cmd,
            cwd=work_dir,
            env={**os.environ, **self.env, **(env or {})},
            timeout=timeout or self.timeout,
        )
        outcome = OperationOutcome(
            operation=op, returncode=result.returncode,
            stdout=result.stdout, stderr=result.stderr,
        )
        return self._settle(outcome)

    def call(
        self, description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any,
    ) -> Any:
        """执行进程内动作（文件改写、复制等），OSError 视为操作失败

        命中良性失败规则时返回 None。
        """
        op = self._begin(description, getattr(fn, "__name__", repr(fn)), "")
        try:
            return fn(*args, **kwargs)
        except OSError as e:
            outcome = OperationOutcome(operation=op, returncode=1, stderr=str(e))
            self._settle(outcome)
            return None

    # ---- 内部 ----

    def _begin(self, description: str, command: str, cwd: str) -> Operation:
        if self.token is not None and self.token.requested:
            raise RunInterrupted(self.token.signum or 0)
        self._step += 1
        op = Operation(
            description=description,
            command=command,
            cwd=cwd,
            stage_id=self.stage_id,
            step=self._step,
            source=_caller_source(),
        )
        self.slot.record(op)
        logger.info(
            "%s", description,
            extra={"stage": op.stage_id or None, "step": op.step},
        )
        logger.debug("  $ %s (cwd=%s)", command, cwd or ".")
        return op

    def _classify(self, outcome: OperationOutcome) -> BenignFailure | None:
        if self._stage is None:
            return None
        for rule in self._stage.benign:
            if rule.matches(outcome):
                return rule
        return None

    def _settle(self, outcome: OperationOutcome) -> OperationOutcome:
        if outcome.success:
            return outcome

        rule = self._classify(outcome)
        if rule is not None:
            outcome.benign = rule.reason
            message = f"{outcome.description}: {rule.reason} (rc={outcome.returncode})"
            self._warnings.append(message)
            logger.warning(
                "良性失败，已降级为警告: %s", message,
                extra={"stage": self.stage_id or None, "step": outcome.operation.step},
            )
            return outcome

        detail = (outcome.stderr or outcome.stdout).strip()
        record = self.capture.capture(
            outcome.operation.stage_id,
            returncode=outcome.returncode,
            reason=detail[-500:],
        )
        raise CommandFailed(record)
