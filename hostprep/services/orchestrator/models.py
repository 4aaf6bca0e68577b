"""编排器数据模型"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hostprep.core.engine import EngineReport
from hostprep.core.identity import Identity
from hostprep.core.models import FailureRecord, Resource, StageState, Verdict


@dataclass
class ProvisioningReport:
    """一次装机运行的报告"""

    identity: Identity | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)
    failure: FailureRecord | None = None
    resources: list[Resource] = field(default_factory=list)
    verdict: Verdict | None = None
    exit_code: int = 1

    @property
    def success(self) -> bool:
        return self.verdict is not None and self.verdict.ok

    @property
    def warnings(self) -> list[str]:
        return [w for step in self.steps for w in step.get("warnings", [])]

    def record_engine(self, engine_report: EngineReport) -> None:
        """把阶段引擎的执行记录转换为报告步骤"""
        self.steps = []
        for run in engine_report.runs:
            status = "skipped" if run.state == StageState.PENDING else run.state.value
            step: dict[str, Any] = {
                "step": run.stage_id,
                "status": status,
                "duration": round(run.duration, 2),
                "warnings": list(run.warnings),
            }
            if run.failure is not None:
                step["detail"] = f"{run.failure.operation} (rc={run.failure.returncode})"
            elif run.result is not None and run.result.message:
                step["detail"] = run.result.message
            self.steps.append(step)
