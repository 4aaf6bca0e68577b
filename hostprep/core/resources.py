"""临时资源跟踪

阶段创建临时目录前后调用 register() 登记；
清理守护在进程退出路径上调用 reclaim_all() 无条件回收。
回收是尽力而为的：单个路径删除失败只记日志，不向上抛出。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from hostprep.core.exceptions import ValidationError
from hostprep.core.models import PathLike, Resource, ResourceState

logger = logging.getLogger(__name__)


class ResourceTracker:
    """临时资源登记表（单线程使用，无需加锁）"""

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def register(self, key: str, path: PathLike) -> Resource:
        """登记一个临时路径，返回资源记录"""
        p = Path(path)
        if not p.is_absolute():
            raise ValidationError(f"临时资源必须是绝对路径: {key}={path}")
        if p == Path(p.anchor):
            raise ValidationError(f"拒绝登记根目录为临时资源: {key}={path}")

        existing = self._resources.get(key)
        if existing is not None and existing.live:
            if existing.path != p:
                raise ValidationError(
                    f"资源 {key} 已登记为 {existing.path}，不能改为 {p}"
                )
            return existing

        resource = Resource(key=key, path=p)
        self._resources[key] = resource
        logger.debug("临时资源已登记: %s -> %s", key, p)
        return resource

    def get(self, key: str) -> Resource | None:
        return self._resources.get(key)

    @property
    def resources(self) -> list[Resource]:
        return list(self._resources.values())

    @property
    def live(self) -> list[Resource]:
        return [r for r in self._resources.values() if r.live]

    def reclaim_all(self) -> list[Resource]:
        """回收所有仍处于登记状态的路径，返回本次成功回收的资源

        幂等：全部回收后再次调用不做任何事。
        """
        reclaimed: list[Resource] = []
        for resource in self.live:
            if self._remove(resource.path):
                resource.state = ResourceState.RECLAIMED
                reclaimed.append(resource)
        if reclaimed:
            logger.info("已回收 %d 个临时资源", len(reclaimed))
        return reclaimed

    @staticmethod
    def _remove(path: Path) -> bool:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
                logger.info("已删除临时目录: %s", path)
            elif path.exists() or path.is_symlink():
                path.unlink()
                logger.info("已删除临时文件: %s", path)
            else:
                logger.debug("临时资源已不存在: %s", path)
        except OSError as e:
            logger.warning("删除临时资源失败: %s (%s)", path, e)
            return False
        return True
