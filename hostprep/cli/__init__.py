"""hostprep 命令行接口

CLI 按功能拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from hostprep import __version__
from hostprep.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """hostprep - 分阶段主机装机编排器"""
    setup_logging(
        level=os.getenv("HOSTPREP_LOG_LEVEL", "INFO"),
        json_output=os.getenv("HOSTPREP_LOG_JSON", "") == "1",
    )


# 注册各子命令
from hostprep.cli.cmd_run import register as _reg_run  # noqa: E402
from hostprep.cli.cmd_stages import register as _reg_stages  # noqa: E402

_reg_run(main)
_reg_stages(main)
