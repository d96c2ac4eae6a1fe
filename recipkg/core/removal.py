"""卸载引擎

两条路径结构上分开，便于单独测试:

  - 精确路径: 文件清单存在时，把清单中的每个绝对路径映射到暂存根目录，
    仅删除仍位于暂存根目录边界内的条目；随后删除描述符、清单与安装日志。
  - 启发式回退: 清单缺失或无法读取时，删除暂存二进制目录中文件名包含包名的条目，
    以及安装日志中提到的、映射后位于暂存根目录内的绝对路径。
    这条路径有损：可能误删同名子串的无关文件，也可能漏删改名/移动过的文件。

无论走哪条路径，最后都会从已安装索引中删除该包。
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path

from recipkg.core.context import BuildContext
from recipkg.core.exceptions import ManifestMissingWarning, RecipkgWarning
from recipkg.core.index import PackageIndex
from recipkg.core.models import Descriptor, RemovalReport
from recipkg.core.store import MetadataStore

logger = logging.getLogger(__name__)

_ABS_PATH_RE = re.compile(r"(?<!\S)(/[^\s]+)")


class RemovalEngine:
    """按文件归属卸载包"""

    def __init__(
        self, ctx: BuildContext, store: MetadataStore, index: PackageIndex,
    ) -> None:
        self.ctx = ctx
        self.store = store
        self.index = index

    def remove(self, name: str) -> RemovalReport:
        logger.info("开始卸载: %s", name)
        versions = self.store.versions(name)

        if not versions:
            report = RemovalReport(name=name, mode="untracked")
            self._warn(report, RecipkgWarning(
                f"包 '{name}' 在 {self.ctx.store_dir} 中没有描述符，仅清理记录"
            ))
            self._delete_records(report, name)
        else:
            manifests = [(d, self.store.read_manifest(d)) for d in versions]
            if all(files is not None for _, files in manifests):
                report = RemovalReport(name=name, mode="exact")
                for desc, files in manifests:
                    self.remove_exact(report, desc, files or [])
            else:
                report = RemovalReport(name=name, mode="heuristic")
                self._warn(report, ManifestMissingWarning(
                    f"包 '{name}' 的文件清单缺失或不完整，退化为启发式卸载"
                ))
                self.remove_heuristic(report, name)
            for desc in versions:
                for p in self.store.delete_descriptor(desc):
                    logger.info("已删除描述符 %s", p)
            self._delete_records(report, name)

        if self.index.remove(name):
            logger.info("包 %s 已从索引移除 (%s)", name, self.index.index_file)
        logger.info("卸载结束: %s (模式=%s, 删除 %d 个文件)", name, report.mode, len(report.deleted))
        return report

    # =====================================================================
    # 精确路径
    # =====================================================================

    def remove_exact(self, report: RemovalReport, desc: Descriptor, files: list[str]) -> None:
        """按清单删除；映射后越出暂存根目录的条目跳过并告警"""
        touched_dirs: set[Path] = set()
        for path in files:
            target = self._confine(path)
            if target is None:
                self._warn(report, RecipkgWarning(
                    f"清单路径越出暂存根目录，已跳过: {path} ({desc.key})"
                ))
                continue
            if self._unlink(target):
                report.deleted.append(str(target))
                touched_dirs.add(target.parent)
        self._prune_empty_dirs(touched_dirs)

    def _confine(self, path: str) -> Path | None:
        """把清单中的绝对路径映射进暂存根目录，结果不在边界内时返回 None

        只解析父目录，末级条目本身若是符号链接则删除链接而不是其指向。
        """
        root = self.ctx.staging_root.resolve()
        candidate = self.ctx.staging_path(path)
        parent = Path(os.path.realpath(candidate.parent))
        target = parent / candidate.name
        if candidate.name in ("", ".", ".."):
            return None
        if target == root or root not in target.parents:
            return None
        return target

    def _prune_empty_dirs(self, dirs: set[Path]) -> None:
        root = self.ctx.staging_root.resolve()
        keep = self.ctx.staging_bin.resolve()
        for d in sorted(dirs, key=lambda p: len(p.parts), reverse=True):
            cur = d
            while cur != root and root in cur.parents and cur != keep:
                try:
                    cur.rmdir()
                except OSError:
                    break
                cur = cur.parent

    # =====================================================================
    # 启发式回退
    # =====================================================================

    def remove_heuristic(self, report: RemovalReport, name: str) -> None:
        """按文件名子串与安装日志中的路径尽力删除（有损）"""
        bin_dir = self.ctx.staging_bin
        if bin_dir.is_dir():
            for entry in sorted(bin_dir.iterdir()):
                if name in entry.name and self._unlink(entry):
                    report.deleted.append(str(entry))

        staging = str(self.ctx.staging_root)
        for log in self.store.install_logs(name):
            for path in _ABS_PATH_RE.findall(log.read_text(encoding="utf-8")):
                mapped = path[len(staging):] if path.startswith(staging + "/") else path
                target = self._confine(mapped)
                # 日志中的目录（如 BIN_DIR）不删，只删文件与链接
                if target is None or (target.is_dir() and not target.is_symlink()):
                    continue
                if self._unlink(target):
                    report.deleted.append(str(target))

    # =====================================================================
    # 公共
    # =====================================================================

    def _delete_records(self, report: RemovalReport, name: str) -> None:
        """删除安装日志与文件清单"""
        for p in self.store.install_logs(name) + self.store.manifest_files(name):
            p.unlink(missing_ok=True)
            logger.info("已删除记录 %s", p)

    @staticmethod
    def _unlink(target: Path) -> bool:
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        else:
            return False
        logger.info("已删除 %s", target)
        return True

    @staticmethod
    def _warn(report: RemovalReport, warning: RecipkgWarning) -> None:
        logger.warning("%s", warning)
        report.warnings.append(warning)
