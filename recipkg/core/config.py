"""集中配置管理

提供统一的配置入口：YAML 文件加载 + 环境变量覆盖。
目录类配置在 BuildContext.from_config() 中转换为具体路径。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field

import yaml

from recipkg.core.exceptions import ConfigError
from recipkg.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "configs/recipkg.yml"

FAKEROOT_MODES = ("auto", "always", "never")
ARCHIVE_EXTS = ("tar.xz", "tar.gz", "tar.bz2", "tar")

# 环境变量 -> 字段名
ENV_OVERRIDES = {
    "RECIPKG_WORK": "work_dir",
    "RECIPKG_PKG": "staging_root",
    "RECIPKG_SOURCES": "sources_dir",
    "RECIPKG_PKGOUT": "store_dir",
    "RECIPKG_LOGDB": "log_dir",
    "RECIPKG_RECIPES": "recipes_dir",
    "RECIPKG_FAKEROOT": "use_fakeroot",
}


@dataclass
class Config:
    """全局配置"""

    # 目录
    work_dir: str = "/tmp/work"
    staging_root: str = "/tmp/pkg"
    sources_dir: str = "/tmp/sources"
    store_dir: str = "/tmp/packages"
    log_dir: str = "/var/log/recipkg"
    recipes_dir: str = "recipes"

    # 暂存根目录内的规范二进制目录
    bin_dir: str = "/var/bin"
    archive_ext: str = "tar.xz"

    # 执行
    use_fakeroot: str = "auto"
    strict_extra_sources: bool = True
    command_timeout: int | None = None

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.use_fakeroot not in FAKEROOT_MODES:
            raise ConfigError(
                f"use_fakeroot 取值无效: {self.use_fakeroot}，"
                f"可选: {', '.join(FAKEROOT_MODES)}"
            )
        if not self.bin_dir.startswith("/"):
            raise ConfigError(f"bin_dir 必须是绝对路径: {self.bin_dir}")
        if self.archive_ext not in ARCHIVE_EXTS:
            raise ConfigError(
                f"archive_ext 取值无效: {self.archive_ext}，"
                f"可选: {', '.join(ARCHIVE_EXTS)}"
            )

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"配置文件无效: {path} ({e})") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def with_env(self, environ: dict[str, str] | None = None) -> Config:
        """返回应用了 RECIPKG_* 环境变量覆盖后的新配置"""
        environ = os.environ if environ is None else environ
        data = asdict(self)
        for var, key in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value:
                data[key] = value
        return Config(**data)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值 + 环境变量覆盖）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config().with_env()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    """从文件初始化全局配置，环境变量优先于文件"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path).with_env()
    logger.debug("配置已加载: %s", path)
    return _current
