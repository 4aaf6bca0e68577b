"""清理守护

以 with 块包住整个运行过程，正常结束、序列中途 FAILED、外部中断、
非预期异常都会经过 __exit__，且每个进程生命周期只执行一次:

1. 进入时先确定最终状态码（在任何清理副作用之前）
2. 回收 ResourceTracker 登记的全部临时资源
3. 计算最终裁决并输出重启指引
4. 调用方以最初确定的状态码退出，清理本身不会改变它
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hostprep.core.exceptions import RunInterrupted, StartupError
from hostprep.core.models import Verdict

if TYPE_CHECKING:
    from types import TracebackType

    from hostprep.core.failure import FailureCapture
    from hostprep.core.resources import ResourceTracker
    from hostprep.core.signals import CancelToken

logger = logging.getLogger(__name__)

GUIDANCE_SUCCESS = "全部阶段完成，可以安全重启 (safe to reboot)"
GUIDANCE_FAILURE = "装机未完成，请勿重启 (do not reboot)，先检查失败记录并人工处理"

# 不属于任何阶段的失败记录所用的标识
STARTUP_STAGE = "startup"
ORCHESTRATOR_STAGE = "orchestrator"


class CleanupGuarantor:
    """进程退出路径上的清理与最终裁决"""

    def __init__(
        self,
        resources: ResourceTracker,
        capture: FailureCapture | None = None,
        token: CancelToken | None = None,
    ) -> None:
        self.resources = resources
        self.capture = capture
        self.token = token
        self.invocations = 0
        self.exit_code: int | None = None
        self.verdict: Verdict | None = None
        self._status = 0

    def set_status(self, code: int) -> None:
        """登记阶段引擎的终止状态码"""
        self._status = code

    def __enter__(self) -> CleanupGuarantor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        code = self._status_from(exc)
        if code == 0 and self.capture is not None and self.capture.last is not None:
            # 存在失败记录时裁决不能是成功
            code = 1
        self.finalize(code)
        # 异常已记录，吞掉后由调用方以 exit_code 退出
        return exc is not None

    def _status_from(self, exc: BaseException | None) -> int:
        if exc is None:
            return self._status
        if isinstance(exc, SystemExit):
            if exc.code is None:
                return 0
            if isinstance(exc.code, int):
                return exc.code
            logger.error("进程退出: %s", exc.code)
            return 1
        if isinstance(exc, RunInterrupted):
            logger.error("运行被中断: %s", exc)
            return 128 + exc.signum
        if isinstance(exc, KeyboardInterrupt):
            logger.error("运行被强制中断")
            if self.token is not None and self.token.requested:
                return self.token.exit_code
            return 130
        if isinstance(exc, StartupError):
            logger.error("启动失败: %s", exc)
            if self.capture is not None:
                self.capture.capture(STARTUP_STAGE, returncode=exc.exit_code, reason=str(exc))
            return exc.exit_code or 1
        if isinstance(exc, Exception):
            logger.error("编排过程出现非预期异常", exc_info=exc)
            if self.capture is not None:
                self.capture.capture_exception(ORCHESTRATOR_STAGE, exc)
            return 1
        return 1

    def finalize(self, code: int) -> Verdict:
        """执行清理并给出裁决；重复调用返回第一次的裁决"""
        if self.verdict is not None:
            logger.debug("清理已执行过，忽略重复调用")
            return self.verdict
        self.invocations += 1
        self.exit_code = code
        if self.token is not None:
            self.token.begin_cleanup()

        logger.info("开始最终清理...")
        try:
            self.resources.reclaim_all()
        except (Exception, KeyboardInterrupt):
            # 清理异常不改变裁决
            logger.exception("清理临时资源时出现异常")
        leftover = self.resources.live
        if leftover:
            logger.warning(
                "以下临时资源未能删除，请手动处理: %s",
                ", ".join(str(r.path) for r in leftover),
            )

        self.verdict = Verdict.success() if code == 0 else Verdict.failure(code)
        self._emit_guidance()
        return self.verdict

    def _emit_guidance(self) -> None:
        assert self.verdict is not None
        if self.verdict.ok:
            logger.info("执行成功 (exit code 0)")
            logger.info(GUIDANCE_SUCCESS)
            return
        logger.error("执行失败 (exit code %d)", self.verdict.code)
        record = self.capture.last if self.capture is not None else None
        if record is not None:
            logger.error(
                "失败记录: 阶段=%s 操作='%s' 位置=%s rc=%d",
                record.stage_id, record.operation, record.location, record.returncode,
                extra={"stage": record.stage_id},
            )
        logger.error(GUIDANCE_FAILURE)
