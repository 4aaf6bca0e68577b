"""配置加载测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from hostprep.core import config as config_mod
from hostprep.core.config import Config, get_config, init_config
from hostprep.core.exceptions import ConfigError


class TestConfig:
    def test_defaults(self) -> None:
        cfg = Config()
        assert cfg.kernel_full_version == "6.15.11"
        assert cfg.nvidia_driver_version == "570"
        assert cfg.kernel_url == "https://kernel.ubuntu.com/mainline/v6.15"

    def test_scratch_path_uses_user(self) -> None:
        cfg = Config(tmp_root="/tmp/")
        assert cfg.scratch_path("kernel-scratch", "alice") == "/tmp/kernel_install_alice"
        assert cfg.scratch_path("build-scratch", "bob") == "/tmp/asus_compile_bob"

    def test_unknown_scratch_key(self) -> None:
        with pytest.raises(ConfigError, match="未配置临时目录"):
            Config().scratch_path("nope", "alice")

    def test_from_file_splits_extra(self, tmp_path: Path) -> None:
        p = tmp_path / "cfg.yml"
        p.write_text("kernel_full_version: '6.16.1'\nowner: ops-team\n", encoding="utf-8")
        cfg = Config.from_file(str(p))
        assert cfg.kernel_full_version == "6.16.1"
        assert cfg.extra == {"owner": "ops-team"}

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = Config.from_file(str(tmp_path / "absent.yml"))
        assert cfg == Config()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.yml"
        p.write_text("key: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="无法读取配置文件"):
            Config.from_file(str(p))

    def test_shipped_default_config_loads(self) -> None:
        path = Path(__file__).resolve().parents[3] / "configs" / "default.yml"
        cfg = Config.from_file(str(path))
        assert cfg.extra == {}
        assert cfg == Config()


class TestGlobalConfig:
    def test_init_and_get(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setattr(config_mod, "_current", None)
        assert get_config() == Config()
        p = tmp_path / "cfg.yml"
        p.write_text("nvidia_driver_version: '575'\n", encoding="utf-8")
        cfg = init_config(str(p))
        assert get_config() is cfg
        assert cfg.nvidia_driver_version == "575"
