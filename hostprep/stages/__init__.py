"""默认装机阶段序列

顺序固定，运行期不可插入；每个阶段显式列出自己的良性失败规则。
"""

from __future__ import annotations

from hostprep.core.models import Stage
from hostprep.stages import asus, firmware, kernel, nvidia, system


def default_stages() -> list[Stage]:
    return [
        system.STAGE,
        kernel.STAGE,
        nvidia.STAGE,
        asus.STAGE,
        firmware.STAGE,
    ]
