"""
CLI 模块

命令行接口实现。
"""

import asyncio
import sys

import click
from loguru import logger

from mup import __version__
from mup.exceptions import MupError
from mup.logger import setup_logger
from mup.models import Loader, RepositoryKind
from mup.orchestrator import ApplyResult, MupOrchestrator


def run(coro):
    """运行协程，并把 mup 异常映射为退出码"""
    try:
        return asyncio.run(coro)
    except MupError as e:
        logger.error(str(e))
        for conflict in getattr(e, "conflicts", []):
            logger.error(f"  - {conflict.get('message', conflict)}")
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        logger.error("操作已中断，未提交新的锁文件")
        sys.exit(130)


def _report(result: ApplyResult):
    report = result.report
    for path in report.added:
        click.echo(f"+ {path}")
    for path in report.updated:
        click.echo(f"~ {path}")
    for path in report.repaired:
        click.echo(f"! {path}")
    for path in report.removed:
        click.echo(f"- {path}")
    if not report.changed:
        click.echo("已是最新")


@click.group()
@click.option(
    "-C",
    "--directory",
    type=click.Path(file_okay=False),
    default=".",
    help="服务端目录",
)
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, directory: str, debug: bool):
    """mup - Minecraft 服务端插件/模组管理工具"""
    setup_logger(level="DEBUG" if debug else None)
    ctx.obj = MupOrchestrator(directory)


@main.group()
def server():
    """初始化和配置服务端"""


@server.command("init")
@click.option("-m", "--minecraft-version", required=True, help="Minecraft 版本")
@click.option(
    "-l",
    "--loader",
    required=True,
    type=click.Choice([loader.value for loader in Loader]),
    help="服务端加载器",
)
@click.option("--loader-version", default="latest", help="加载器版本（Paper 构建号等），默认最新")
@click.pass_obj
def server_init(orchestrator: MupOrchestrator, minecraft_version: str, loader: str, loader_version: str):
    """在当前目录初始化服务端，下载服务端核心文件并签署 eula"""
    result = run(orchestrator.init_server(minecraft_version, loader, loader_version))
    _report(result)


@server.command("install")
@click.pass_obj
def server_install(orchestrator: MupOrchestrator):
    """按锁文件安装服务端核心文件与全部插件/模组"""
    report = run(orchestrator.install())
    click.echo(f"下载 {report.stats.completed}，跳过 {report.stats.skipped}")


@server.command("sign")
@click.pass_obj
def server_sign(orchestrator: MupOrchestrator):
    """签署 eula.txt"""
    orchestrator.sign_eula()


@main.group()
def plugin():
    """管理插件和模组"""


@plugin.command("add")
@click.argument("project")
@click.option("-v", "--version", default="latest", help="版本 ID，默认最新兼容版本")
@click.option(
    "-r",
    "--repository",
    default="modrinth",
    type=click.Choice([kind.value for kind in RepositoryKind]),
    help="仓库",
)
@click.option("--no-deps", is_flag=True, help="不安装依赖")
@click.pass_obj
def plugin_add(orchestrator: MupOrchestrator, project: str, version: str, repository: str, no_deps: bool):
    """添加插件/模组及其依赖"""
    result = run(
        orchestrator.add_plugin(
            project, version=version, repository=repository, dependencies=not no_deps
        )
    )
    _report(result)


@plugin.command("remove")
@click.argument("project")
@click.option("--keep-jarfile", is_flag=True, help="保留已下载的文件")
@click.pass_obj
def plugin_remove(orchestrator: MupOrchestrator, project: str, keep_jarfile: bool):
    """移除插件/模组"""
    result = run(orchestrator.remove_plugin(project, keep_jarfile=keep_jarfile))
    _report(result)


@plugin.command("update")
@click.argument("project", default="all")
@click.pass_obj
def plugin_update(orchestrator: MupOrchestrator, project: str):
    """更新插件/模组到最新兼容版本"""
    result = run(orchestrator.update_plugin(project))
    _report(result)


@plugin.command("list")
@click.pass_obj
def plugin_list(orchestrator: MupOrchestrator):
    """列出锁文件中的插件/模组"""
    try:
        lockfile = orchestrator.lockfiles.load()
    except MupError as e:
        logger.error(str(e))
        sys.exit(e.exit_code)
    if lockfile is not None and lockfile.server_jar is not None:
        jar = lockfile.server_jar
        click.echo(f"服务端: {jar.filename} ({lockfile.profile.loader.value} {jar.loader_version})")
    if lockfile is None or not len(lockfile):
        click.echo("没有安装任何插件")
        return
    click.echo(f"{lockfile.profile} (generation {lockfile.generation})")
    for artifact in lockfile:
        marker = "*" if artifact.origin.value == "direct" else " "
        click.echo(
            f" {marker} {artifact.repository.value}:{artifact.name or artifact.project_id} "
            f"{artifact.version_number or artifact.version_id} -> {artifact.install_path}"
        )


if __name__ == "__main__":
    main()
