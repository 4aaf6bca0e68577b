"""核心数据模型

阶段、资源、操作、失败记录和最终裁决等数据类集中定义，
避免 engine ↔ executor ↔ cleanup 之间的循环依赖。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Union

from hostprep.core.exceptions import ValidationError

if TYPE_CHECKING:
    from hostprep.core.context import RunContext


# =========================================================================
# 阶段
# =========================================================================


class StageState(str, Enum):
    """阶段状态机: PENDING → RUNNING → {COMPLETED, FAILED}"""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class BenignFailure:
    """良性失败规则 — 阶段显式声明哪些失败只是"无事可做"

    至少需要 pattern 或 returncodes 之一，不允许一条规则吞掉所有失败。
    """

    reason: str
    pattern: str = ""                      # 在 stdout+stderr 中搜索的正则
    returncodes: tuple[int, ...] = ()      # 为空表示任意非零退出码
    operation: str = ""                    # 只作用于描述以此开头的操作

    def __post_init__(self) -> None:
        if not self.pattern and not self.returncodes:
            raise ValidationError(
                f"良性失败规则必须限定 pattern 或 returncodes: {self.reason}"
            )
        if self.pattern:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValidationError(f"良性失败规则正则无效: {self.pattern}: {e}") from e

    def matches(self, outcome: OperationOutcome) -> bool:
        if self.operation and not outcome.operation.description.startswith(self.operation):
            return False
        if self.returncodes and outcome.returncode not in self.returncodes:
            return False
        if self.pattern:
            text = f"{outcome.stdout}\n{outcome.stderr}"
            return re.search(self.pattern, text, re.MULTILINE) is not None
        return True


@dataclass
class StageResult:
    """阶段主体的返回结果"""

    ok: bool = True
    message: str = ""
    code: int = 0
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def completed(cls, message: str = "") -> StageResult:
        return cls(ok=True, message=message)

    @classmethod
    def failed(cls, message: str, code: int = 1) -> StageResult:
        return cls(ok=False, message=message, code=code or 1)


StageBody = Callable[["RunContext"], Optional[StageResult]]


@dataclass(frozen=True)
class Stage:
    """命名的、有序的装机工作单元（运行期不可动态插入）"""

    id: str
    description: str
    body: StageBody
    benign: tuple[BenignFailure, ...] = ()


# =========================================================================
# 资源
# =========================================================================


class ResourceState(str, Enum):
    REGISTERED = "registered"
    RECLAIMED = "reclaimed"


@dataclass
class Resource:
    """一次运行中创建的临时路径"""

    key: str
    path: Path
    state: ResourceState = ResourceState.REGISTERED

    @property
    def live(self) -> bool:
        return self.state == ResourceState.REGISTERED


# =========================================================================
# 操作与失败记录
# =========================================================================


@dataclass(frozen=True)
class Operation:
    """一次尝试执行的操作（外部命令或进程内动作）"""

    description: str
    command: str = ""
    cwd: str = ""
    stage_id: str = ""
    step: int = 0
    source: str = ""        # 发起调用的阶段代码位置 file:line

    @property
    def location(self) -> str:
        marker = f"{self.stage_id} step {self.step}"
        return f"{marker} ({self.source})" if self.source else marker


@dataclass
class OperationOutcome:
    """操作执行结果: 退出码 + 操作描述，不做成败解释"""

    operation: Operation
    returncode: int
    stdout: str = ""
    stderr: str = ""
    benign: str = ""        # 被降级为警告时记录规则原因

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def description(self) -> str:
        return self.operation.description


@dataclass(frozen=True)
class FailureRecord:
    """失败现场：阶段、操作、位置。只保存在内存中，供最终报告使用"""

    stage_id: str
    operation: str
    command: str
    location: str
    returncode: int
    reason: str = ""


# =========================================================================
# 最终裁决
# =========================================================================


class VerdictKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Verdict:
    """每次进程生命周期只产生一次的最终裁决"""

    kind: VerdictKind
    code: int = 0

    @classmethod
    def success(cls) -> Verdict:
        return cls(VerdictKind.SUCCESS, 0)

    @classmethod
    def failure(cls, code: int) -> Verdict:
        return cls(VerdictKind.FAILURE, code or 1)

    @property
    def ok(self) -> bool:
        return self.kind == VerdictKind.SUCCESS


PathLike = Union[str, Path]
