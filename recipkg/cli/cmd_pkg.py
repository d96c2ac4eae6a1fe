"""CLI — 包管理核心命令（依赖解析、安装、卸载及单步流水线）"""

from __future__ import annotations

import click

from recipkg.cli import session


def register(group: click.Group) -> None:
    group.add_command(resolve_deps)
    group.add_command(install)
    group.add_command(remove)
    group.add_command(prepare)
    group.add_command(build)
    group.add_command(package)


@click.command(name="resolve_deps")
@click.argument("names", nargs=-1, required=True)
def resolve_deps(names: tuple[str, ...]) -> None:
    """按依赖在前的顺序输出安装序列（每行一个包名）"""
    with session() as c:
        resolution = c.resolver.resolve(names)
    for name in resolution.order:
        click.echo(name)


@click.command()
@click.argument("recipe")
def install(recipe: str) -> None:
    """构建并安装配方（RECIPE 为配方文件路径或配方目录中的包名）"""
    with session() as c:
        pipeline = c.pipeline
        desc = pipeline.install(recipe)
    click.echo(f"已安装: {desc.key}")
    if len(pipeline.installed) > 1:
        click.echo(f"本次构建: {' '.join(pipeline.installed)}")


@click.command()
@click.argument("name")
def remove(name: str) -> None:
    """卸载包；包未知时仍清理残留记录，但以非零退出码结束"""
    with session() as c:
        report = c.remover.remove(name)
    click.echo(f"已删除 {len(report.deleted)} 个文件 (模式: {report.mode})")
    if not report.known:
        raise click.ClickException(f"包 '{name}' 未安装")


# ---- 单步流水线 ----

@click.command()
@click.argument("recipe")
def prepare(recipe: str) -> None:
    """仅获取源码、解压并应用补丁"""
    with session() as c:
        r = c.recipes.load(recipe)
        src_dir = c.pipeline.prepare(r)
    click.echo(f"源码就绪: {src_dir}")


@click.command()
@click.argument("recipe")
def build(recipe: str) -> None:
    """在已准备好的源码目录中执行 BUILD"""
    with session() as c:
        r = c.recipes.load(recipe)
        c.pipeline.build(r)
    click.echo(f"构建完成: {r.key}")


@click.command()
@click.argument("recipe")
def package(recipe: str) -> None:
    """把当前暂存根目录打包并写入描述符"""
    with session() as c:
        r = c.recipes.load(recipe)
        desc = c.pipeline.package(r)
    click.echo(f"包已生成: {c.store.archive_path(desc.name, desc.version)}")
