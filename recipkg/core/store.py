"""元数据仓库

包仓库目录 (store_dir) 存放打包产物:
  <name>-<version>.tar.xz   分发归档
  <name>-<version>.meta     扁平描述符 (KEY=value)
  <name>-<version>.json     结构化描述符，内嵌 files 文件清单

日志目录 (log_dir) 存放安装记录:
  <name>-<version>.files    文件清单，每行一个绝对路径
  <name>-<version>.log      人类可读的安装日志

同名包可能存在多个版本的描述符，按包名查找时取自然版本序最高者。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from recipkg.core.context import BuildContext
from recipkg.core.models import Descriptor, Recipe, version_key
from recipkg.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

LOG_PACKAGE_PREFIX = "Package: "


class MetadataStore:
    """描述符、文件清单与安装日志的读写"""

    def __init__(self, ctx: BuildContext) -> None:
        self.ctx = ctx

    # ---- 路径 ----

    def meta_path(self, name: str, version: str) -> Path:
        return self.ctx.store_dir / f"{name}-{version}.meta"

    def json_path(self, name: str, version: str) -> Path:
        return self.ctx.store_dir / f"{name}-{version}.json"

    def archive_path(self, name: str, version: str) -> Path:
        return self.ctx.store_dir / f"{name}-{version}.{self.ctx.archive_ext}"

    def manifest_path(self, name: str, version: str) -> Path:
        return self.ctx.log_dir / f"{name}-{version}.files"

    def log_path(self, name: str, version: str) -> Path:
        return self.ctx.log_dir / f"{name}-{version}.log"

    # ---- 描述符 ----

    def list_descriptors(self) -> list[Descriptor]:
        """枚举仓库中全部 .meta 描述符（按文件名排序，结果确定）"""
        if not self.ctx.store_dir.is_dir():
            return []
        result = []
        for meta in sorted(self.ctx.store_dir.glob("*.meta")):
            desc = Descriptor.from_meta(meta.read_text(encoding="utf-8"))
            if not desc.name:
                logger.warning("描述符缺少 NAME，已忽略: %s", meta)
                continue
            result.append(desc)
        return result

    def versions(self, name: str) -> list[Descriptor]:
        """同名包的全部版本，按版本升序"""
        found = [d for d in self.list_descriptors() if d.name == name]
        return sorted(found, key=lambda d: version_key(d.version))

    def find(self, name: str) -> Descriptor | None:
        """按包名查找描述符，多版本时取最高版本"""
        found = self.versions(name)
        if len(found) > 1:
            logger.info(
                "包 %s 存在多个版本 (%s)，选用 %s",
                name, ", ".join(d.version for d in found), found[-1].version,
            )
        return found[-1] if found else None

    def latest_by_name(self) -> dict[str, Descriptor]:
        """{name: 最高版本描述符}"""
        result: dict[str, Descriptor] = {}
        for d in self.list_descriptors():
            cur = result.get(d.name)
            if cur is None or version_key(d.version) > version_key(cur.version):
                result[d.name] = d
        return result

    def write_descriptor(self, desc: Descriptor) -> tuple[Path, Path]:
        """写入扁平与结构化两种形式，返回 (meta, json) 路径"""
        meta = self.meta_path(desc.name, desc.version)
        js = self.json_path(desc.name, desc.version)
        atomic_write(meta, desc.to_meta())
        atomic_write(js, json.dumps(desc.to_json(), indent=2, ensure_ascii=False) + "\n")
        logger.info("描述符已写入: %s, %s", meta, js)
        return meta, js

    def delete_descriptor(self, desc: Descriptor) -> list[Path]:
        """删除描述符（.meta / .json），分发归档保留"""
        removed = []
        for p in (self.meta_path(desc.name, desc.version), self.json_path(desc.name, desc.version)):
            if p.exists():
                p.unlink()
                removed.append(p)
        return removed

    # ---- 文件清单 ----

    def write_manifest(self, name: str, version: str, paths: list[str]) -> Path:
        target = self.manifest_path(name, version)
        atomic_write(target, "".join(f"{p}\n" for p in paths))
        return target

    def read_manifest(self, desc: Descriptor) -> list[str] | None:
        """读取文件清单：优先结构化描述符中内嵌的 files，其次 .files 文件

        两者都缺失或无法解析时返回 None。
        """
        js = self.json_path(desc.name, desc.version)
        if js.is_file():
            try:
                data = json.loads(js.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                logger.warning("结构化描述符无法解析 %s: %s", js, e)
            else:
                files = data.get("files") if isinstance(data, dict) else None
                if isinstance(files, list):
                    return [str(f) for f in files]

        manifest = self.manifest_path(desc.name, desc.version)
        if manifest.is_file():
            return [
                line.strip()
                for line in manifest.read_text(encoding="utf-8").splitlines()
                if line.strip()
            ]
        return None

    def has_manifest(self, name: str) -> bool:
        """日志目录中是否存在该包任一版本的文件清单"""
        return bool(self.manifest_files(name))

    def manifest_files(self, name: str) -> list[Path]:
        return [p for p in self._candidates(name, ".files") if self._belongs(p, name)]

    # ---- 安装日志 ----

    def write_install_log(self, recipe: Recipe, manifest: Path) -> Path:
        target = self.log_path(recipe.name, recipe.version)
        lines = [
            f"{LOG_PACKAGE_PREFIX}{recipe.name}",
            f"Version: {recipe.version}",
            f"Source: {recipe.primary_source}",
            f"Depends: {' '.join(recipe.depends)}",
            f"Binaries in: {self.ctx.bin_dir}",
            f"Installed files: {manifest}",
        ]
        atomic_write(target, "\n".join(lines) + "\n")
        return target

    def install_logs(self, name: str) -> list[Path]:
        """属于该包的安装日志（按日志首行 Package 确认归属，避免 name-extra 这类前缀误匹配）"""
        return [p for p in self._candidates(name, ".log") if self._log_package(p) == name]

    def _candidates(self, name: str, suffix: str) -> list[Path]:
        if not self.ctx.log_dir.is_dir():
            return []
        return sorted(self.ctx.log_dir.glob(f"{name}-*{suffix}"))

    @staticmethod
    def _log_package(log: Path) -> str:
        first = log.read_text(encoding="utf-8").splitlines()[:1]
        if first and first[0].startswith(LOG_PACKAGE_PREFIX):
            return first[0][len(LOG_PACKAGE_PREFIX):].strip()
        return ""

    def _belongs(self, path: Path, name: str) -> bool:
        log = path.with_suffix(".log")
        if log.is_file():
            return self._log_package(log) == name
        # 没有安装日志可对照时，版本段不含 '-' 才视为该包
        return "-" not in path.name[len(name) + 1:-len(path.suffix)]
