"""CLI — 杂项命令（已安装列表、包信息、仓库同步）"""

from __future__ import annotations

import click

from recipkg.cli import session


def register(group: click.Group) -> None:
    group.add_command(list_installed)
    group.add_command(info)
    group.add_command(sync)


@click.command(name="list")
def list_installed() -> None:
    """列出已安装的包"""
    with session() as c:
        rows = c.index.list_all()
    if not rows:
        click.echo("没有已安装的包。")
        return
    for r in rows:
        click.echo(f"  {r.name:24s} {r.version:12s} {r.installed_at.isoformat(timespec='seconds')}")


@click.command()
@click.argument("name")
def info(name: str) -> None:
    """显示包仓库中的描述符"""
    with session() as c:
        desc = c.store.find(name)
        if desc is None:
            raise click.ClickException(f"包仓库中没有 '{name}' 的描述符")
        files = c.store.read_manifest(desc)
        row = c.index.lookup(name)

    click.echo(f"名称:     {desc.name}")
    click.echo(f"版本:     {desc.version}")
    click.echo(f"源码:     {desc.source}")
    if desc.extra_sources:
        click.echo(f"附加源码: {' '.join(desc.extra_sources)}")
    click.echo(f"依赖:     {' '.join(desc.depends) or '(无)'}")
    click.echo(f"二进制:   {desc.bin_dir}")
    click.echo(f"文件数:   {len(files) if files is not None else '(清单缺失)'}")
    click.echo(f"已安装:   {row.version if row else '否'}")


@click.command()
@click.argument("repo")
@click.argument("directory")
def sync(repo: str, directory: str) -> None:
    """把包仓库同步到 git 仓库 REPO 的 DIRECTORY 目录并推送"""
    with session() as c:
        changed = c.sync.sync(repo, directory)
    click.echo("已推送新提交" if changed else "没有变更")
