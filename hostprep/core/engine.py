"""阶段引擎

按声明顺序逐个执行阶段，每个阶段一个状态机:
    PENDING → RUNNING → {COMPLETED, FAILED}

整体快速失败：第一个未被降级的失败使整个序列停止，后续阶段保持 PENDING。
良性失败由各阶段的 benign 规则在执行器中预先分类，不会中断序列。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hostprep.core.exceptions import CommandFailed, RunInterrupted, ValidationError
from hostprep.core.models import FailureRecord, Stage, StageResult, StageState

if TYPE_CHECKING:
    from hostprep.core.context import RunContext
    from hostprep.core.executor import StepExecutor
    from hostprep.core.signals import CancelToken

logger = logging.getLogger(__name__)


def normalize_exit_code(returncode: int) -> int:
    """把失败操作的退出码映射为进程退出码（1..255，信号为 128+n）"""
    if returncode < 0:
        return min(128 - returncode, 255)
    if returncode == 0:
        return 1
    return min(returncode, 255)


@dataclass
class StageRun:
    """单个阶段的执行记录"""

    stage: Stage
    state: StageState = StageState.PENDING
    result: StageResult | None = None
    failure: FailureRecord | None = None
    warnings: list[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def stage_id(self) -> str:
        return self.stage.id


@dataclass
class EngineReport:
    runs: list[StageRun]

    @property
    def failed(self) -> StageRun | None:
        for run in self.runs:
            if run.state == StageState.FAILED:
                return run
        return None

    @property
    def success(self) -> bool:
        return all(r.state == StageState.COMPLETED for r in self.runs)

    @property
    def exit_code(self) -> int:
        failed = self.failed
        if failed is not None:
            code = failed.failure.returncode if failed.failure else 1
            return normalize_exit_code(code)
        return 0 if self.success else 1


class StageEngine:
    """顺序阶段执行引擎"""

    def __init__(
        self, stages: list[Stage], executor: StepExecutor,
        token: CancelToken | None = None,
    ) -> None:
        ids = [s.id for s in stages]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValidationError(f"阶段标识重复: {', '.join(duplicates)}")
        self.stages = list(stages)
        self.executor = executor
        self.token = token
        self.trace: list[str] = []
        self.report = EngineReport(runs=[StageRun(stage=s) for s in self.stages])

    def run(self, ctx: RunContext) -> EngineReport:
        total = len(self.stages)
        for index, run in enumerate(self.report.runs, 1):
            if self.token is not None and self.token.requested:
                raise RunInterrupted(self.token.signum or 0)
            logger.info(
                "[Stage %d/%d] %s: %s", index, total,
                run.stage_id, run.stage.description,
                extra={"stage": run.stage_id},
            )
            self._run_stage(run, ctx)
            if run.state == StageState.FAILED:
                skipped = [r.stage_id for r in self.report.runs[index:]]
                if skipped:
                    logger.error("序列在 %s 处停止，跳过: %s", run.stage_id, ", ".join(skipped))
                break
        return self.report

    def _run_stage(self, run: StageRun, ctx: RunContext) -> None:
        stage = run.stage
        capture = self.executor.capture
        run.state = StageState.RUNNING
        self.trace.append(stage.id)
        self.executor.enter_stage(stage)
        started = time.monotonic()
        try:
            result = stage.body(ctx) or StageResult.completed()
        except CommandFailed as e:
            result = StageResult.failed(str(e), code=e.returncode)
            run.failure = e.record
        except RunInterrupted:
            run.state = StageState.FAILED
            raise
        except Exception as e:
            logger.exception("阶段 %s 抛出非预期异常", stage.id, extra={"stage": stage.id})
            result = StageResult.failed(f"{type(e).__name__}: {e}")
            run.failure = capture.capture_exception(stage.id, e)
        except SystemExit as e:
            # 阶段主体自行退出也算阶段失败，退出码 0 同样不能视为成功
            run.state = StageState.FAILED
            code = e.code if isinstance(e.code, int) and e.code != 0 else 1
            run.failure = capture.capture_exception(
                stage.id, e, returncode=normalize_exit_code(code),
            )
            raise
        except BaseException:
            # KeyboardInterrupt 交给清理守护
            run.state = StageState.FAILED
            raise
        finally:
            run.duration = time.monotonic() - started
            run.warnings.extend(self.executor.leave_stage())

        run.result = result
        run.warnings.extend(result.warnings)
        if result.ok:
            run.state = StageState.COMPLETED
            logger.info(
                "阶段 %s 完成 (%.1fs, %d 条警告)",
                stage.id, run.duration, len(run.warnings),
                extra={"stage": stage.id},
            )
            return

        run.state = StageState.FAILED
        if run.failure is None:
            run.failure = capture.capture(
                stage.id, returncode=result.code, reason=result.message,
            )
