"""recipkg 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
命令结果写 stdout，日志与警告写 stderr。
"""

import contextlib
import os
from collections.abc import Iterator

import click

from recipkg import __version__
from recipkg.core.config import DEFAULT_CONFIG_FILE, init_config
from recipkg.core.exceptions import RecipkgError
from recipkg.services.container import ServiceContainer, get_container, reset_container
from recipkg.utils.logger import setup_logging


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


@contextlib.contextmanager
def session() -> Iterator[ServiceContainer]:
    """加调用级锁执行一条命令，业务异常与 I/O 错误转为一行错误提示 + 退出码 1"""
    try:
        with _svc().session() as c:
            yield c
    except (RecipkgError, OSError, UnicodeDecodeError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "config_path",
    default=lambda: os.getenv("RECIPKG_CONFIG", DEFAULT_CONFIG_FILE),
    show_default=DEFAULT_CONFIG_FILE,
    help="配置文件路径（环境变量 RECIPKG_CONFIG）",
)
def main(config_path: str) -> None:
    """recipkg - 基于配方的源码包管理器"""
    setup_logging(
        level=os.getenv("RECIPKG_LOG_LEVEL", "INFO"),
        json_output=os.getenv("RECIPKG_LOG_JSON", "") == "1",
    )
    try:
        init_config(config_path)
    except RecipkgError as e:
        raise click.ClickException(str(e)) from e
    reset_container()


# 注册各领域子命令
from recipkg.cli.cmd_pkg import register as _reg_pkg  # noqa: E402
from recipkg.cli.cmd_misc import register as _reg_misc  # noqa: E402

_reg_pkg(main)
_reg_misc(main)
