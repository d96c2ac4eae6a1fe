"""构建上下文

把工作区、暂存根目录、源码区、包仓库、日志/索引目录等共享目录
收拢成一个显式的值对象，每次调用创建一次，传给所有组件。
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from recipkg.core.config import Config
from recipkg.utils.shell import CommandExecutor, LocalExecutor, fakeroot_available

logger = logging.getLogger(__name__)

INDEX_FILE = "packages.db"
LOCK_FILE = ".lock"


@dataclass
class BuildContext:
    """一次调用内共享的路径与执行配置"""

    work_dir: Path
    staging_root: Path
    sources_dir: Path
    store_dir: Path
    log_dir: Path
    recipes_dir: Path
    bin_dir: str = "/var/bin"
    archive_ext: str = "tar.xz"
    fakeroot: bool = False
    strict_extra_sources: bool = True
    command_timeout: int | None = None
    executor: CommandExecutor = field(default_factory=LocalExecutor)

    @classmethod
    def from_config(
        cls, cfg: Config, executor: CommandExecutor | None = None,
    ) -> BuildContext:
        if cfg.use_fakeroot == "always":
            fakeroot = True
        elif cfg.use_fakeroot == "never":
            fakeroot = False
        else:
            fakeroot = fakeroot_available()
        return cls(
            work_dir=Path(cfg.work_dir),
            staging_root=Path(cfg.staging_root),
            sources_dir=Path(cfg.sources_dir),
            store_dir=Path(cfg.store_dir),
            log_dir=Path(cfg.log_dir),
            recipes_dir=Path(cfg.recipes_dir),
            bin_dir=cfg.bin_dir,
            archive_ext=cfg.archive_ext,
            fakeroot=fakeroot,
            strict_extra_sources=cfg.strict_extra_sources,
            command_timeout=cfg.command_timeout,
            executor=executor or LocalExecutor(),
        )

    @property
    def index_file(self) -> Path:
        return self.log_dir / INDEX_FILE

    @property
    def lock_file(self) -> Path:
        return self.log_dir / LOCK_FILE

    @property
    def staging_bin(self) -> Path:
        """暂存根目录内的规范二进制目录，如 /tmp/pkg/var/bin"""
        return self.staging_path(self.bin_dir)

    def staging_path(self, absolute: str) -> Path:
        """把绝对路径映射到暂存根目录下的等价路径（/usr/bin/foo -> <PKG>/usr/bin/foo）"""
        return self.staging_root / absolute.lstrip("/")

    def ensure_dirs(self) -> None:
        for d in (
            self.work_dir, self.staging_root, self.sources_dir,
            self.store_dir, self.log_dir,
        ):
            d.mkdir(parents=True, exist_ok=True)
        self.staging_bin.mkdir(parents=True, exist_ok=True)

    def clear_staging(self) -> None:
        """清空暂存根目录（保留目录本身）"""
        self.staging_root.mkdir(parents=True, exist_ok=True)
        for entry in self.staging_root.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        logger.debug("暂存根目录已清空: %s", self.staging_root)

    def command_env(self, base: dict[str, str], **extra: str) -> dict[str, str]:
        """配方命令的环境变量：继承 base，暴露各目录位置"""
        return {
            **base,
            "WORK": str(self.work_dir),
            "PKG": str(self.staging_root),
            "DESTDIR": str(self.staging_root),
            "SOURCES": str(self.sources_dir),
            "PKGOUT": str(self.store_dir),
            "BIN": self.bin_dir,
            **extra,
        }
