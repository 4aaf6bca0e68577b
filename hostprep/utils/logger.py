"""hostprep 日志配置

提供统一的日志配置和格式化功能，支持普通文本和结构化 JSON 两种输出格式。
阶段引擎通过 extra={"stage": ..., "step": ...} 附带诊断上下文。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# 诊断通道附带的上下文字段
CONTEXT_FIELDS = ("stage", "step", "operation", "location", "returncode")


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于事后排查

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "ERROR",
            "logger": "hostprep.core.failure",
            "message": "log message",
            "module": "failure",
            "function": "capture",
            "line": 42,
            "stage": "kernel",            (仅在有阶段上下文时)
            "exception": "traceback..."   (仅在有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            # 使用 record.created 而非 datetime.now()，记录事件发生时间而非格式化时间
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


class StageFormatter(logging.Formatter):
    """人类可读格式，有阶段上下文时在级别后追加 [stage]"""

    def format(self, record: logging.LogRecord) -> str:
        stage = getattr(record, "stage", None)
        record.stage_tag = f" [{stage}]" if stage else ""
        return super().format(record)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        json_output: 为 True 时使用 JSON 格式，否则使用人类可读格式

    说明:
        - 输出到 stderr
        - 自动清理已有 handlers，避免重复输出
    """
    root = logging.getLogger()
    reset_logging()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)

    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        fmt = "%(asctime)s [%(levelname)-7s]%(stage_tag)s %(name)s: %(message)s"
        handler.setFormatter(StageFormatter(fmt))

    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """获取指定名称的 logger 实例"""
    return logging.getLogger(name)


def reset_logging() -> None:
    """重置根日志器配置，清理所有已注册的 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
