"""失败现场捕获

执行器报告非零退出码（且未被归类为良性失败）时同步触发：
从"最近一次尝试的操作"槽位、当前阶段标识和位置标记构建 FailureRecord，
写入诊断通道。本模块从不终止进程，终止由阶段引擎的 FAILED 状态驱动。
"""

from __future__ import annotations

import logging
import traceback
from pathlib import Path
from typing import TYPE_CHECKING

from hostprep.core.models import FailureRecord

if TYPE_CHECKING:
    from hostprep.core.executor import OperationSlot

logger = logging.getLogger(__name__)


class FailureCapture:
    """失败现场捕获器，同一套逻辑服务于所有阶段"""

    def __init__(self, slot: OperationSlot) -> None:
        self._slot = slot
        self.records: list[FailureRecord] = []

    @property
    def last(self) -> FailureRecord | None:
        return self.records[-1] if self.records else None

    def capture(
        self, stage_id: str, *, returncode: int,
        reason: str = "", location: str = "",
    ) -> FailureRecord:
        """构建并输出失败记录"""
        op = self._slot.operation
        if op is not None and op.stage_id == stage_id:
            record = FailureRecord(
                stage_id=stage_id,
                operation=op.description,
                command=op.command,
                location=location or op.location,
                returncode=returncode,
                reason=reason,
            )
        else:
            # 阶段内还没有发起过任何操作
            record = FailureRecord(
                stage_id=stage_id,
                operation=reason or "(阶段主体)",
                command="",
                location=location or f"{stage_id} step 0",
                returncode=returncode,
                reason=reason,
            )
        self.records.append(record)
        self._emit(record)
        return record

    def capture_exception(
        self, stage_id: str, exc: BaseException, returncode: int = 1,
    ) -> FailureRecord:
        """阶段主体抛出非预期异常时，用 traceback 定位"""
        reason = f"{type(exc).__name__}: {exc}"
        frames = traceback.extract_tb(exc.__traceback__)
        location = ""
        if frames:
            fs = frames[-1]
            location = f"{stage_id} ({Path(fs.filename).name}:{fs.lineno} in {fs.name})"
        return self.capture(
            stage_id, returncode=returncode, reason=reason, location=location,
        )

    @staticmethod
    def _emit(record: FailureRecord) -> None:
        extra = {
            "stage": record.stage_id,
            "operation": record.operation,
            "location": record.location,
            "returncode": record.returncode,
        }
        logger.error("阶段 %s 失败", record.stage_id, extra=extra)
        logger.error("失败操作: '%s'", record.operation, extra=extra)
        if record.command:
            logger.error("失败命令: %s", record.command, extra=extra)
        logger.error("失败位置: %s (rc=%d)", record.location, record.returncode, extra=extra)
        if record.reason:
            logger.error("原因: %s", record.reason, extra=extra)
        logger.error("--- 请检查日志并核对失败现场 ---", extra=extra)
