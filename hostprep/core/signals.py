"""外部中断处理

第一次收到 SIGINT/SIGTERM/SIGHUP 只记录请求，当前操作跑完后
由执行器/阶段引擎停下，再交给清理守护；第二次收到则立即抛 KeyboardInterrupt。
进入最终清理后收到的信号只记日志，保证清理和裁决能执行完。
"""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

TRAPPED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class CancelToken:
    """中断请求标记"""

    def __init__(self) -> None:
        self.signum: int | None = None
        self.cleaning = False

    @property
    def requested(self) -> bool:
        return self.signum is not None

    def request(self, signum: int) -> None:
        if self.signum is None:
            self.signum = signum

    def begin_cleanup(self) -> None:
        """进入最终清理，之后的信号不再升级为 KeyboardInterrupt"""
        self.cleaning = True

    @property
    def exit_code(self) -> int:
        return 128 + (self.signum or signal.SIGINT)


class InterruptTrap:
    """在 with 块内接管中断信号，退出时恢复原处理器"""

    def __init__(self, token: CancelToken, enabled: bool = True) -> None:
        self.token = token
        self.enabled = enabled
        self._previous: dict[int, Any] = {}

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        if self.token.cleaning:
            logger.warning("正在执行最终清理，忽略信号 %d", signum)
            return
        if self.token.requested:
            logger.error("再次收到信号 %d，立即中止", signum)
            raise KeyboardInterrupt
        self.token.request(signum)
        logger.warning(
            "收到信号 %d，将在当前操作结束后停止（再次发送立即中止）", signum,
        )

    def __enter__(self) -> InterruptTrap:
        # signal.signal 只能在主线程调用
        if self.enabled and threading.current_thread() is threading.main_thread():
            for sig in TRAPPED_SIGNALS:
                self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(self, *exc: object) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()
