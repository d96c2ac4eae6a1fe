"""源码获取、解压与补丁

职责:
- 按地址形式分派获取方式: *.git 克隆 / http(s)/ftp 下载 / file:// 与本地路径复制
- 按扩展名分派解压: tar 系列、zip、单文件 .gz/.bz2/.xz
- 按声明顺序应用补丁

下载与本地复制的产物放入源码区 (sources_dir)，解压与 git 克隆的结果放入工作区 (work_dir)。
"""

from __future__ import annotations

import bz2
import gzip
import logging
import lzma
import shutil
import tarfile
import urllib.error
import urllib.request
import zipfile
from pathlib import Path
from urllib.parse import unquote, urlparse

from recipkg.core.context import BuildContext
from recipkg.core.exceptions import ExecutionError, ExtractError, FetchError, PatchError
from recipkg.utils.net import is_download_url, url_scheme, validate_url_scheme
from recipkg.utils.shell import run_cmd

logger = logging.getLogger(__name__)

TAR_SUFFIXES = (
    ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tbz",
    ".tar.xz", ".txz", ".tar",
)

_SINGLE_FILE = {
    ".gz": gzip.open,
    ".bz2": bz2.open,
    ".xz": lzma.open,
}


def archive_format(filename: str) -> str | None:
    """识别归档格式，返回 "tar" / "zip" / ".gz" / ".bz2" / ".xz"，不支持时返回 None"""
    lower = filename.lower()
    if lower.endswith(TAR_SUFFIXES):
        return "tar"
    if lower.endswith(".zip"):
        return "zip"
    for suffix in _SINGLE_FILE:
        if lower.endswith(suffix):
            return suffix
    return None


def _basename(location: str) -> str:
    name = unquote(urlparse(location).path).rstrip("/").split("/")[-1]
    if not name:
        raise FetchError(f"无法从地址解析文件名: {location}")
    return name


class SourceFetcher:
    """源码获取器"""

    def __init__(self, ctx: BuildContext) -> None:
        self.ctx = ctx

    # ---- 获取 ----

    def fetch(self, location: str) -> Path:
        """获取一个源码地址，返回本地路径（归档文件或已展开的目录）"""
        if location.endswith(".git") or url_scheme(location) == "git":
            return self._clone(location)
        if is_download_url(location):
            return self._download(location)
        if url_scheme(location) in ("", "file"):
            return self._copy_local(location)
        raise FetchError(f"不支持的源码地址: {location}")

    def _clone(self, url: str) -> Path:
        dest = self.ctx.work_dir / _basename(url).removesuffix(".git")
        if (dest / ".git").exists():
            logger.info("  克隆已存在，直接使用: %s", dest)
            return dest
        try:
            run_cmd(
                ["git", "clone", url, str(dest)],
                cwd=str(self.ctx.work_dir), label="git clone",
                executor=self.ctx.executor,
            )
        except ExecutionError as e:
            raise FetchError(f"克隆失败: {url} - {e}") from e
        return dest

    def _download(self, url: str) -> Path:
        validate_url_scheme(url, context="source download")
        dest = self.ctx.sources_dir / _basename(url)
        if dest.exists():
            logger.info("  缓存命中: %s", dest)
            return dest
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.info("  下载: %s", url)
        try:
            urllib.request.urlretrieve(url, str(dest))  # nosec B310
        except (urllib.error.URLError, OSError) as e:
            dest.unlink(missing_ok=True)
            raise FetchError(f"下载失败: {url} - {e}") from e
        logger.info("  已保存: %s", dest)
        return dest

    def _copy_local(self, location: str) -> Path:
        src = Path(unquote(urlparse(location).path)) if location.startswith("file:") else Path(location)
        if not src.exists():
            raise FetchError(f"本地源码不存在: {src}")
        if src.is_dir():
            dest = self.ctx.work_dir / src.name
            shutil.copytree(src, dest, dirs_exist_ok=True)
            return dest
        dest = self.ctx.sources_dir / src.name
        if src.resolve() != dest.resolve():
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        return dest

    # ---- 解压 ----

    def extract(self, archive: Path) -> Path:
        """解压到工作区，返回工作区路径"""
        fmt = archive_format(archive.name)
        dest = self.ctx.work_dir
        dest.mkdir(parents=True, exist_ok=True)
        try:
            if fmt == "tar":
                with tarfile.open(archive, "r:*") as tf:
                    tf.extractall(path=str(dest), filter="data")  # noqa: S202
            elif fmt == "zip":
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(path=str(dest))
            elif fmt in _SINGLE_FILE:
                out = dest / archive.name[: -len(fmt)]
                with _SINGLE_FILE[fmt](archive, "rb") as src, open(out, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            else:
                raise ExtractError(f"不支持的归档格式: {archive.name}")
        except (OSError, tarfile.TarError, zipfile.BadZipFile, lzma.LZMAError, EOFError) as e:
            raise ExtractError(f"解压失败 {archive}: {e}") from e
        logger.info("  已解压: %s -> %s", archive.name, dest)
        return dest

    # ---- 补丁 ----

    def apply_patches(
        self, patches: list[str], cwd: Path, base_dir: Path | None = None,
    ) -> None:
        """在 cwd 中按顺序执行 patch -p1；相对路径以配方所在目录为基准"""
        for p in patches:
            if is_download_url(p):
                patch_file = self._download(p)
            else:
                patch_file = Path(p)
                if not patch_file.is_absolute() and base_dir is not None:
                    patch_file = base_dir / patch_file
            if not patch_file.is_file():
                raise PatchError(f"补丁不存在: {patch_file}")
            try:
                run_cmd(
                    ["patch", "-p1", "-i", str(patch_file.resolve())],
                    cwd=str(cwd), label="patch", executor=self.ctx.executor,
                )
            except ExecutionError as e:
                raise PatchError(f"补丁应用失败 {patch_file.name}: {e}") from e
