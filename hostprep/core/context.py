"""运行上下文

进程启动、确认特权身份后创建一次，之后只读，所有阶段共享。
"最近一次尝试的操作"不放在全局变量里，而是经由 executor 显式传递。
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from hostprep.core.exceptions import ConfigError

if TYPE_CHECKING:
    from hostprep.core.config import Config
    from hostprep.core.executor import StepExecutor
    from hostprep.core.identity import Identity
    from hostprep.core.models import OperationOutcome
    from hostprep.core.resources import ResourceTracker

logger = logging.getLogger(__name__)


def prepare_scratch_dir(path: Path) -> Path:
    """在可预测的路径上创建全新的私有目录 (0700)

    路径已存在时：符号链接、非目录、属主不是当前用户一律拒绝；
    当前用户自己的旧目录（上次回收失败的残留）先整体删除再重建，
    不沿用其中的任何文件。
    """
    try:
        st = path.lstat()
    except FileNotFoundError:
        st = None
    if st is not None:
        if stat.S_ISLNK(st.st_mode) or not stat.S_ISDIR(st.st_mode):
            raise FileExistsError(errno.EEXIST, "临时路径已存在且不是目录", str(path))
        if st.st_uid != os.geteuid():
            raise PermissionError(
                errno.EPERM, f"临时目录属主不是当前用户 (uid={st.st_uid})", str(path),
            )
        logger.warning("删除上次运行残留的临时目录: %s", path)
        shutil.rmtree(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # 不带 exist_ok：删除之后被他人抢先创建同样视为失败
    path.mkdir(mode=0o700)
    return path


@dataclass(frozen=True)
class RunContext:
    """阶段共享的只读上下文"""

    privileged_user: str
    invoking_user: str
    paths: Mapping[str, Path]
    config: Config = field(repr=False)
    executor: StepExecutor = field(repr=False)
    resources: ResourceTracker = field(repr=False)

    @classmethod
    def build(
        cls,
        identity: Identity,
        config: Config,
        executor: StepExecutor,
        resources: ResourceTracker,
    ) -> RunContext:
        """按发起用户展开全部临时路径"""
        paths = {
            key: Path(config.scratch_path(key, identity.invoking_user))
            for key in config.scratch_dirs
        }
        return cls(
            privileged_user=identity.privileged_user,
            invoking_user=identity.invoking_user,
            paths=MappingProxyType(paths),
            config=config,
            executor=executor,
            resources=resources,
        )

    def path(self, key: str) -> Path:
        try:
            return self.paths[key]
        except KeyError:
            raise ConfigError(f"未知的临时路径: {key}") from None

    # ---- 阶段常用操作 ----

    def run(self, description: str, cmd: str | list[str], **kwargs: Any) -> OperationOutcome:
        return self.executor.run(description, cmd, **kwargs)

    def call(self, description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return self.executor.call(description, fn, *args, **kwargs)

    def scratch(self, key: str) -> Path:
        """创建并登记按用户命名的临时目录

        同一次运行内再次调用直接返回已创建的目录；
        路径不安全时按操作失败处理，不登记，也不会被回收删除。
        """
        existing = self.resources.get(key)
        if existing is not None and existing.live:
            return existing.path
        p = self.path(key)
        self.call(f"创建临时目录 {p}", prepare_scratch_dir, p)
        self.resources.register(key, p)
        return p

    def mkdtemp(self, key: str) -> Path:
        """创建随机命名的临时目录并登记"""
        p = Path(self.call(
            f"创建临时目录 ({key})", tempfile.mkdtemp,
            prefix=f"hostprep-{key}-{self.invoking_user}-", dir=self.config.tmp_root,
        ))
        self.resources.register(key, p)
        return p
