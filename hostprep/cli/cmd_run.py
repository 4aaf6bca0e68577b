"""CLI — 执行装机"""

from __future__ import annotations

import click

from hostprep.core.config import init_config
from hostprep.core.exceptions import StartupError
from hostprep.core.identity import ensure_privileged
from hostprep.services.orchestrator import Orchestrator, ProvisioningReport


def register(group: click.Group) -> None:
    group.add_command(run)


def _print_report(report: ProvisioningReport) -> None:
    click.echo("\n=== 装机执行报告 ===")
    for step in report.steps:
        status = step.get("status", "?")
        detail = step.get("detail", "")
        click.echo(f"  [{status:9s}] {step['step']}" + (f"  ({detail})" if detail else ""))
        for warning in step.get("warnings", []):
            click.echo(f"      警告: {warning}")

    if report.failure is not None:
        f = report.failure
        click.echo(f"\n失败阶段: {f.stage_id}")
        click.echo(f"失败操作: {f.operation}")
        if f.command:
            click.echo(f"失败命令: {f.command}")
        click.echo(f"失败位置: {f.location}")
    click.echo(f"\n退出码: {report.exit_code}")
    if report.success:
        click.echo("结论: 可以安全重启 (safe to reboot)")
    else:
        click.echo("结论: 请勿重启 (do not reboot)")


@click.command()
@click.option("-c", "--config", "config_path", default="configs/default.yml", help="配置文件路径")
@click.option("-y", "--yes", is_flag=True, help="跳过 Secure Boot 确认")
@click.option("--no-sudo", is_flag=True, help="非 root 时不通过 sudo 重新执行")
@click.pass_context
def run(ctx: click.Context, config_path: str, yes: bool, no_sudo: bool) -> None:
    """按顺序执行全部装机阶段（不可回滚）

    配置加载和 Secure Boot 确认都在清理守护内完成，
    任何一步失败都会输出裁决和“请勿重启”指引。
    """
    if not no_sudo:
        args = ["run", "-c", config_path]
        if yes:
            args.append("--yes")
        ensure_privileged(args)

    def confirm_secure_boot() -> None:
        if yes:
            return
        if not click.confirm("Secure Boot 已在 UEFI/BIOS 中关闭？", default=False):
            raise StartupError("未确认 Secure Boot 已关闭，取消装机")

    report = Orchestrator(
        config_loader=lambda: init_config(config_path),
        preflight=confirm_secure_boot,
    ).run()
    _print_report(report)
    ctx.exit(report.exit_code)
