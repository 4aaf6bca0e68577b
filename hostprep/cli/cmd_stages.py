"""CLI — 查看阶段序列"""

from __future__ import annotations

import click

from hostprep.stages import default_stages


def register(group: click.Group) -> None:
    group.add_command(stages)


@click.command()
def stages() -> None:
    """列出固定的阶段序列及各阶段的良性失败规则"""
    for index, stage in enumerate(default_stages(), 1):
        click.echo(f"{index}. {stage.id:12s} {stage.description}")
        for rule in stage.benign:
            scope = f" [{rule.operation}]" if rule.operation else ""
            codes = f" rc={','.join(map(str, rule.returncodes))}" if rule.returncodes else ""
            click.echo(f"     良性失败{scope}: {rule.reason}{codes}")
