"""核心数据模型

Recipe / Descriptor / IndexRow 及各操作的结果对象集中定义，
其他模块统一从此处导入。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from recipkg.core.exceptions import RecipkgWarning

# =========================================================================
# 配方
# =========================================================================


@dataclass
class Recipe:
    """单个包的声明式构建配方

    build_command / install_command 是不透明文本，只在流水线的受控子进程中执行。
    """

    name: str
    version: str
    primary_source: str
    build_command: str
    install_command: str
    package_dir: str = ""
    extra_sources: list[str] = field(default_factory=list)
    patches: list[str] = field(default_factory=list)
    depends: list[str] = field(default_factory=list)
    path: Path | None = None  # 配方文件位置，用于解析相对补丁路径

    def __post_init__(self) -> None:
        if not self.package_dir:
            self.package_dir = f"{self.name}-{self.version}"

    @property
    def key(self) -> str:
        return f"{self.name}-{self.version}"


# =========================================================================
# 描述符
# =========================================================================

META_KEYS = (
    "NAME", "VERSION", "SOURCE", "EXTRA_SOURCES",
    "DEPENDS", "SOURCES_DIR", "BIN_DIR",
)


@dataclass
class Descriptor:
    """已打包构建的持久化记录，以 name-version 为键"""

    name: str
    version: str
    source: str = ""
    extra_sources: list[str] = field(default_factory=list)
    depends: list[str] = field(default_factory=list)
    bin_dir: str = "/var/bin"
    sources_dir: str = ""
    files: list[str] | None = None  # 内嵌文件清单，仅结构化形式携带

    @property
    def key(self) -> str:
        return f"{self.name}-{self.version}"

    @classmethod
    def from_recipe(
        cls, recipe: Recipe, *, bin_dir: str, sources_dir: str,
        files: list[str] | None = None,
    ) -> Descriptor:
        return cls(
            name=recipe.name,
            version=recipe.version,
            source=recipe.primary_source,
            extra_sources=list(recipe.extra_sources),
            depends=list(recipe.depends),
            bin_dir=bin_dir,
            sources_dir=sources_dir,
            files=files,
        )

    def to_meta(self) -> str:
        """扁平形式：每行一个 KEY=value"""
        values = {
            "NAME": self.name,
            "VERSION": self.version,
            "SOURCE": self.source,
            "EXTRA_SOURCES": " ".join(self.extra_sources),
            "DEPENDS": " ".join(self.depends),
            "SOURCES_DIR": self.sources_dir,
            "BIN_DIR": self.bin_dir,
        }
        return "".join(f"{k}={values[k]}\n" for k in META_KEYS)

    @classmethod
    def from_meta(cls, text: str) -> Descriptor:
        fields: dict[str, str] = {}
        for line in text.splitlines():
            if "=" not in line:
                continue
            k, v = line.split("=", 1)
            v = v.strip()
            if len(v) >= 2 and v[0] == v[-1] == '"':
                v = v[1:-1]
            fields[k.strip()] = v
        return cls(
            name=fields.get("NAME", ""),
            version=fields.get("VERSION", ""),
            source=fields.get("SOURCE", ""),
            extra_sources=fields.get("EXTRA_SOURCES", "").split(),
            depends=fields.get("DEPENDS", "").split(),
            bin_dir=fields.get("BIN_DIR", "") or "/var/bin",
            sources_dir=fields.get("SOURCES_DIR", ""),
        )

    def to_json(self) -> dict:
        """结构化形式，files 为内嵌文件清单（未记录清单时不输出该键）"""
        data = {
            "name": self.name,
            "version": self.version,
            "source": self.source,
            "extra_sources": list(self.extra_sources),
            "depends": list(self.depends),
            "bin_dir": self.bin_dir,
            "sources_dir": self.sources_dir,
        }
        if self.files is not None:
            data["files"] = list(self.files)
        return data

    @classmethod
    def from_json(cls, data: dict) -> Descriptor:
        files = data.get("files")
        return cls(
            name=data.get("name", ""),
            version=data.get("version", ""),
            source=data.get("source", ""),
            extra_sources=list(data.get("extra_sources") or []),
            depends=list(data.get("depends") or []),
            bin_dir=data.get("bin_dir") or "/var/bin",
            sources_dir=data.get("sources_dir", ""),
            files=list(files) if isinstance(files, list) else None,
        )


_VERSION_PART_RE = re.compile(r"\d+|[A-Za-z]+")


def version_key(version: str) -> tuple:
    """自然版本排序键：数字段按数值比较（1.10 > 1.9），数字段高于字母段"""
    parts = []
    for p in _VERSION_PART_RE.findall(version):
        if p.isdigit():
            parts.append((1, int(p), ""))
        else:
            parts.append((0, 0, p.lower()))
    return tuple(parts)


# =========================================================================
# 索引
# =========================================================================


@dataclass
class IndexRow:
    """已安装包索引中的一行"""

    name: str
    version: str
    installed_at: datetime

    def to_line(self) -> str:
        return f"{self.name} {self.version} {self.installed_at.isoformat(timespec='seconds')}\n"

    @classmethod
    def from_line(cls, line: str) -> IndexRow | None:
        parts = line.split()
        if len(parts) != 3:
            return None
        try:
            ts = datetime.fromisoformat(parts[2])
        except ValueError:
            return None
        return cls(name=parts[0], version=parts[1], installed_at=ts)


# =========================================================================
# 流水线状态
# =========================================================================


class PackageState(str, Enum):
    """单个包在流水线中的状态，按声明顺序推进"""

    PREPARED = "prepared"
    BUILT = "built"
    INSTALLED = "installed"
    RECORDED = "recorded"
    PACKAGED = "packaged"
    ALREADY_INSTALLED = "already_installed"


PIPELINE_ORDER = (
    PackageState.PREPARED,
    PackageState.BUILT,
    PackageState.INSTALLED,
    PackageState.RECORDED,
    PackageState.PACKAGED,
)


# =========================================================================
# 结果对象
# =========================================================================


@dataclass
class Resolution:
    """resolve_deps 的结果：依赖在前的安装顺序 + 警告"""

    order: list[str] = field(default_factory=list)
    warnings: list[RecipkgWarning] = field(default_factory=list)


@dataclass
class RemovalReport:
    """卸载结果"""

    name: str
    mode: str  # "exact", "heuristic", "untracked"
    deleted: list[str] = field(default_factory=list)
    warnings: list[RecipkgWarning] = field(default_factory=list)

    @property
    def known(self) -> bool:
        return self.mode != "untracked"
