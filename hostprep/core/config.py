"""集中配置管理

装机参数（内核版本、驱动版本、仓库地址、临时目录模板等）统一在此定义。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

import yaml

from hostprep.core.exceptions import ConfigError
from hostprep.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


def _default_scratch_dirs() -> dict[str, str]:
    return {
        "kernel-scratch": "kernel_install_{user}",
        "build-scratch": "asus_compile_{user}",
    }


def _default_apt_packages() -> list[str]:
    return [
        "wget", "dpkg", "git", "build-essential", "curl", "ca-certificates",
        "libpci-dev", "libsysfs-dev", "libudev-dev", "libboost-dev",
        "libgtk-3-dev", "libglib2.0-dev", "libseat-dev",
    ]


@dataclass
class Config:
    """装机全局配置"""

    # 临时目录（模板中的 {user} 替换为发起装机的非特权用户）
    tmp_root: str = "/tmp"
    scratch_dirs: dict[str, str] = field(default_factory=_default_scratch_dirs)

    # 内核
    kernel_version: str = "6.15"
    kernel_full_version: str = "6.15.11"
    mainline_url: str = "https://kernel.ubuntu.com/mainline/v{kernel_version}"
    kernel_arch: str = "amd64"

    # 显卡驱动
    nvidia_driver_version: str = "570"
    nvidia_ppa: str = "ppa:graphics-drivers/ppa"
    gdm_rules_file: str = "/lib/udev/rules.d/61-gdm.rules"

    # ASUS 控制工具
    supergfxctl_repo: str = "https://gitlab.com/asus-linux/supergfxctl.git"
    asusctl_repo: str = "https://gitlab.com/asus-linux/asusctl.git"
    rustup_url: str = "https://sh.rustup.rs"
    cargo_bin: str = "/root/.cargo/bin"
    user_group: str = "users"

    # 固件
    firmware_repo: str = "https://gitlab.com/kernel-firmware/linux-firmware.git"
    firmware_dir: str = "/lib/firmware"
    firmware_subdir: str = "cirrus"

    # 系统准备
    apt_components: list[str] = field(default_factory=lambda: ["restricted", "multiverse"])
    apt_packages: list[str] = field(default_factory=_default_apt_packages)

    # 执行
    command_timeout: int = 7200
    command_env: dict[str, str] = field(
        default_factory=lambda: {"DEBIAN_FRONTEND": "noninteractive"},
    )

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @property
    def kernel_url(self) -> str:
        return self.mainline_url.format(kernel_version=self.kernel_version)

    def scratch_path(self, key: str, user: str) -> str:
        """按发起用户展开临时目录路径，避免同一主机上不同用户的运行互相覆盖"""
        template = self.scratch_dirs.get(key)
        if template is None:
            raise ConfigError(f"未配置临时目录: {key}")
        return f"{self.tmp_root.rstrip('/')}/{template.format(user=user)}"

    @classmethod
    def from_file(cls, path: str = "configs/default.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/default.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
