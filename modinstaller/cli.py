"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import click
import toml
import yaml
from loguru import logger

from modinstaller import __version__
from modinstaller.exceptions import (
    ConfigParseError,
    DependencyDownloadError,
    MissingInstallationError,
    ModInstallerError,
)
from modinstaller.logger import setup_logger
from modinstaller.models import (
    FILE_RESOURCE_TYPES,
    Installation,
    InstallationMode,
    InstallerConfig,
    installation_from_dict,
)
from modinstaller.orchestrator import (
    InstallationOrchestrator,
    InstallPolicy,
    InstallResult,
)


DEFAULT_CONFIG_FILES = ("modinstaller.toml", "modinstaller.yaml", "modinstaller.json")
PACKAGE_TYPE_CHOICE = click.Choice(
    [t.value for t in FILE_RESOURCE_TYPES], case_sensitive=False
)


def load_config(config_path: str) -> Dict[str, Any]:
    """按后缀加载 TOML / JSON / YAML 配置文件"""
    path = Path(config_path)

    if not path.exists():
        raise click.ClickException(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    try:
        if suffix == ".toml":
            return toml.loads(text)
        elif suffix == ".json":
            return json.loads(text)
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(text) or {}
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"配置文件解析失败: {config_path}",
            context={"file": config_path, "error": str(e)},
        )

    raise ConfigParseError(
        f"不支持的配置文件格式: {suffix}", context={"file": config_path}
    )


def build_installation(
    config: InstallerConfig, overrides: Dict[str, Optional[str]]
) -> Installation:
    """合并配置文件中的实例和命令行参数"""
    data: Dict[str, Any] = {}
    if config.installation is not None:
        data.update(
            name=config.installation.name,
            game_version=config.installation.game_version,
            loader=config.installation.loader,
            game_dir=config.installation.game_dir,
            loader_version=config.installation.loader_version,
        )
    data.update({key: value for key, value in overrides.items() if value})

    if not data.get("game_dir"):
        raise MissingInstallationError("请通过 --game-dir 或配置文件指定游戏实例")
    return installation_from_dict(data)


def run_command(
    obj: Dict[str, Any],
    mode: InstallationMode,
    action: Callable[[InstallationOrchestrator, Installation], Awaitable[None]],
):
    """创建协调器并运行一个命令，ModInstallerError 转为 ClickException"""

    async def runner():
        config: InstallerConfig = obj["config"]
        installation = build_installation(config, obj["installation"])
        async with InstallationOrchestrator(config, mode=mode) as orchestrator:
            await orchestrator.load_plugins()
            await action(orchestrator, installation)

    try:
        asyncio.run(runner())
    except ModInstallerError as e:
        raise click.ClickException(e.user_message)


def echo_result(result: InstallResult):
    for outcome in result.dependencies:
        click.echo(f"  + 依赖 {outcome.project_id}: {outcome.file_name}")
    installed = result.installed
    if installed is not None:
        click.echo(f"✓ {installed.title}: {installed.file_name}")
    for dep_id in result.unresolved:
        click.echo(f"  ! 无法获取依赖信息: {dep_id}")


@click.group()
@click.option(
    "-c", "--config", "config_path", type=click.Path(), help="配置文件 (toml/json/yaml)"
)
@click.option("--game-dir", help="游戏实例目录")
@click.option("--game-version", help="游戏版本，例如 1.20.1")
@click.option("--loader", help="加载器，例如 fabric / forge / vanilla")
@click.option("--name", help="游戏实例名称")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx, config_path, game_dir, game_version, loader, name, debug):
    """ModInstaller - Minecraft 资源依赖解析与安装工具"""
    setup_logger(level="DEBUG" if debug else None)

    if config_path is None:
        config_path = next(
            (path for path in DEFAULT_CONFIG_FILES if Path(path).exists()), None
        )

    try:
        data = load_config(config_path) if config_path else {}
        config = InstallerConfig.from_dict(data)
    except ModInstallerError as e:
        raise click.ClickException(e.user_message)

    ctx.obj = {
        "config": config,
        "installation": {
            "game_dir": game_dir,
            "game_version": game_version,
            "loader": loader,
            "name": name,
        },
    }


@main.command()
@click.argument("project")
@click.pass_obj
def resolve(obj, project):
    """列出项目缺失的依赖"""

    async def action(orchestrator: InstallationOrchestrator, installation: Installation):
        result = await orchestrator.resolve(project, installation)
        if not result.missing:
            click.echo(f"{result.root.title}: 没有缺失的依赖")
        for dep in result.missing:
            release = dep.default_release
            version = release.version_number if release else "无可用版本"
            click.echo(f"  - {dep.detail.title} ({dep.project_id}): {version}")
        for dep_id in result.unresolved:
            click.echo(f"  ! 无法获取依赖信息: {dep_id}")

    run_command(obj, InstallationMode.REMOTE, action)


@main.command()
@click.argument("project")
@click.option(
    "--policy",
    type=click.Choice(["auto", "manual", "main-only"]),
    default=None,
    help="依赖处理策略",
)
@click.option("--version", "version_id", help="主资源的版本 ID 或版本号")
@click.option("-y", "--yes", is_flag=True, help="手动模式下自动确认全部依赖")
@click.pass_obj
def install(obj, project, policy, version_id, yes):
    """安装项目及其依赖"""

    async def action(orchestrator: InstallationOrchestrator, installation: Installation):
        result = await orchestrator.install(project, installation, policy, version_id)
        if not result.needs_confirmation:
            echo_result(result)
            return

        resolution = result.resolution
        click.echo(f"{resolution.project.title} 缺少以下依赖:")
        for dep in resolution.missing:
            selected = resolution.selected.get(dep.id) or "无可用版本"
            click.echo(f"  - {dep.title} ({dep.id}): {selected}")

        if not (yes or click.confirm("下载全部依赖并继续安装?", default=True)):
            if click.confirm("只下载主资源?", default=False):
                echo_result(await orchestrator.download_main_only(version_id=version_id))
            else:
                orchestrator.close_resolution()
            return

        while True:
            try:
                echo_result(await orchestrator.download_all_and_main(version_id))
                return
            except DependencyDownloadError as e:
                click.echo(f"以下依赖下载失败: {', '.join(e.failed)}")
                if not (yes or click.confirm("重试失败的依赖?", default=True)):
                    orchestrator.close_resolution()
                    raise
                for dep_id in e.failed:
                    try:
                        await orchestrator.retry_dependency(dep_id)
                    except ModInstallerError as retry_error:
                        logger.warning(f"[重试] {dep_id}: {retry_error.user_message}")
                if yes and not orchestrator.resolution.all_dependencies_downloaded:
                    raise

    run_command(obj, InstallationMode.REMOTE, action)


@main.command()
@click.argument("project")
@click.option("--file", "file_name", help="当前安装的文件名")
@click.option("--type", "package_type", type=PACKAGE_TYPE_CHOICE, default=None)
@click.option("--check", is_flag=True, help="只检查，不更新")
@click.pass_obj
def update(obj, project, file_name, package_type, check):
    """检查并更新资源"""

    async def action(orchestrator: InstallationOrchestrator, installation: Installation):
        status = await orchestrator.check_for_update(
            project, installation, package_type, file_name
        )
        if status.current_hash is None:
            click.echo(f"{project} 未安装")
            return
        if not status.has_update:
            click.echo(f"{project} 已是最新")
            return

        click.echo(f"{project} 有新版本: {status.latest_release.version_number}")
        if check:
            return
        result = await orchestrator.update_resource(
            project, installation, package_type, file_name
        )
        echo_result(result)

    run_command(obj, InstallationMode.LOCAL, action)


@main.command()
@click.argument("file_name")
@click.option("--type", "package_type", type=PACKAGE_TYPE_CHOICE, default="mod")
@click.pass_obj
def toggle(obj, file_name, package_type):
    """启用 / 禁用资源文件"""

    async def action(orchestrator: InstallationOrchestrator, installation: Installation):
        new_name = await orchestrator.toggle_resource(
            file_name, installation, package_type
        )
        click.echo(f"{file_name} -> {new_name}")

    run_command(obj, InstallationMode.LOCAL, action)


@main.command()
@click.argument("file_name")
@click.option("--type", "package_type", type=click.STRING, default="mod")
@click.option("--project", "project_id", help="资源对应的项目 ID")
@click.pass_obj
def delete(obj, file_name, package_type, project_id):
    """删除资源文件"""

    async def action(orchestrator: InstallationOrchestrator, installation: Installation):
        deleted = await orchestrator.delete_resource(
            file_name, installation, package_type, project_id
        )
        click.echo(f"已删除: {deleted}")

    run_command(obj, InstallationMode.LOCAL, action)


@main.command()
@click.option("--type", "package_type", type=PACKAGE_TYPE_CHOICE, default="mod")
@click.option("--page", type=int, default=None, help="只扫描指定页")
@click.option("--page-size", type=int, default=None, help="每页数量")
@click.pass_obj
def scan(obj, package_type, page, page_size):
    """扫描已安装的资源"""

    async def action(orchestrator: InstallationOrchestrator, installation: Installation):
        index = orchestrator.index_cache.index_for(installation, package_type)
        if page is None:
            entries = sorted(await index.scan(force=True), key=lambda e: e.file_name)
            has_more = False
        else:
            result = await index.scan_page(page, page_size)
            entries = result.entries
            has_more = result.has_more

        for entry in entries:
            state = "禁用" if entry.disabled else "启用"
            click.echo(
                f"{entry.file_name}\t{entry.hash}\t{entry.project_id or '-'}\t{state}"
            )
        if has_more:
            click.echo("...")

    run_command(obj, InstallationMode.LOCAL, action)


if __name__ == "__main__":
    main()
