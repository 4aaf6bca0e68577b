"""装机编排器

职责：
- 在清理守护内加载配置、执行启动前确认、确认特权身份并构建运行上下文
- 交给阶段引擎按顺序执行
- 汇总报告（裁决、退出码、失败记录、临时资源）
"""

from __future__ import annotations

import logging
from typing import Callable

from hostprep.core.cleanup import CleanupGuarantor
from hostprep.core.config import Config, get_config
from hostprep.core.context import RunContext
from hostprep.core.engine import StageEngine
from hostprep.core.exceptions import ConfigError, StartupError
from hostprep.core.executor import StepExecutor
from hostprep.core.identity import Identity, detect_identity
from hostprep.core.models import Stage
from hostprep.core.resources import ResourceTracker
from hostprep.core.signals import CancelToken, InterruptTrap
from hostprep.services.orchestrator.models import ProvisioningReport
from hostprep.utils.shell import CommandBackend

logger = logging.getLogger(__name__)


class Orchestrator:
    """分阶段装机编排器（with 清理守护保证退出路径上的回收与裁决）"""

    def __init__(
        self,
        stages: list[Stage] | None = None,
        *,
        config: Config | None = None,
        config_loader: Callable[[], Config] | None = None,
        preflight: Callable[[], None] | None = None,
        backend: CommandBackend | None = None,
        identity_provider: Callable[[], Identity] | None = None,
        trap_signals: bool = True,
    ) -> None:
        if stages is None:
            from hostprep.stages import default_stages
            stages = default_stages()
        self.stages = list(stages)
        self.config = config
        self.config_loader = config_loader or get_config
        self.preflight = preflight
        self.backend = backend
        self.identity_provider = identity_provider or detect_identity
        self.trap_signals = trap_signals
        self.engine: StageEngine | None = None
        self.guard: CleanupGuarantor | None = None

    def run(self) -> ProvisioningReport:
        """执行全部阶段，返回报告；调用方以 report.exit_code 退出"""
        token = CancelToken()
        executor = StepExecutor(self.backend, token=token)
        resources = ResourceTracker()
        self.guard = guard = CleanupGuarantor(resources, executor.capture, token)
        report = ProvisioningReport()

        with InterruptTrap(token, enabled=self.trap_signals), guard:
            self.engine = StageEngine(self.stages, executor, token)
            config = self._load_config()
            executor.env = dict(config.command_env)
            executor.timeout = config.command_timeout
            if self.preflight is not None:
                self.preflight()
            report.identity = self.identity_provider()
            ctx = RunContext.build(report.identity, config, executor, resources)
            logger.info(
                "开始装机: %d 个阶段，临时目录 %s",
                len(self.stages), ", ".join(str(p) for p in ctx.paths.values()),
            )
            guard.set_status(self.engine.run(ctx).exit_code)

        if self.engine is not None:
            report.record_engine(self.engine.report)
            report.trace = list(self.engine.trace)
        report.failure = executor.capture.last
        report.resources = resources.resources
        report.verdict = guard.verdict
        report.exit_code = guard.exit_code if guard.exit_code is not None else 1
        return report

    def _load_config(self) -> Config:
        """在清理守护内加载配置，加载失败按启动期致命错误处理"""
        if self.config is None:
            try:
                self.config = self.config_loader()
            except ConfigError as e:
                raise StartupError(f"配置加载失败: {e}") from e
        return self.config
