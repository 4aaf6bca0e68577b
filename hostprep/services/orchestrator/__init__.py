"""装机编排服务

- models.py: 编排报告
- orchestrator.py: 协调器（身份确认 → 上下文 → 阶段引擎，外层清理守护）
"""

from hostprep.services.orchestrator.models import ProvisioningReport
from hostprep.services.orchestrator.orchestrator import Orchestrator

__all__ = [
    "Orchestrator",
    "ProvisioningReport",
]
