"""统一异常体系

所有业务异常继承 HostPrepError，替代散落的 ValueError / RuntimeError。
CLI 层可据此输出友好提示，清理守护据此计算最终退出码。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hostprep.core.models import FailureRecord


class HostPrepError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(HostPrepError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(HostPrepError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class StartupError(HostPrepError):
    """启动期致命错误：权限或身份无法确认，任何阶段都不会执行"""

    code = "STARTUP_FATAL"

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class CommandFailed(HostPrepError):
    """阶段内操作失败且未被归类为良性失败"""

    code = "COMMAND_FAILED"

    def __init__(self, record: FailureRecord) -> None:
        super().__init__(
            f"{record.stage_id}: {record.operation} 失败 (rc={record.returncode})"
        )
        self.record = record
        self.returncode = record.returncode


class RunInterrupted(HostPrepError):
    """收到外部中断信号，在当前操作结束后停止"""

    code = "INTERRUPTED"

    def __init__(self, signum: int) -> None:
        super().__init__(f"收到信号 {signum}，停止后续操作")
        self.signum = signum
