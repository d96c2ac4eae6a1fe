"""公共测试夹具：隔离的构建上下文、本地源码归档与配方生成"""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

from recipkg.core.context import BuildContext
from recipkg.core.index import PackageIndex
from recipkg.core.models import Descriptor
from recipkg.core.pipeline import BuildPipeline
from recipkg.core.recipe import RecipeBook
from recipkg.core.store import MetadataStore
from recipkg.services.fetcher import SourceFetcher
from recipkg.utils.shell import CommandResult

DEFAULT_INSTALL = (
    'mkdir -p "$PKG/usr/bin" "$PKG/usr/share/$NAME"'
    ' && echo "#!/bin/sh" > "$PKG/usr/bin/$NAME"'
    ' && cp README "$PKG/usr/share/$NAME/README"'
)


class RecordingExecutor:
    """记录命令的执行器，按子命令返回预设输出"""

    def __init__(
        self,
        returncode: int = 0,
        outputs: dict[str, str] | None = None,
        on_call: Callable[[list[str], str], None] | None = None,
    ) -> None:
        self.returncode = returncode
        self.outputs = outputs or {}
        self.on_call = on_call
        self.calls: list[tuple[list[str], str]] = []

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = cmd.split() if isinstance(cmd, str) else list(cmd)
        self.calls.append((args, cwd))
        if self.on_call is not None:
            self.on_call(args, cwd)
        sub = args[1] if len(args) > 1 else args[0]
        return CommandResult(
            returncode=self.returncode,
            stdout=self.outputs.get(sub, ""),
            stderr="boom" if self.returncode else "",
        )

    def subcommands(self) -> list[str]:
        return [args[1] for args, _ in self.calls if args[0] == "git"]


@pytest.fixture
def fake_executor() -> type[RecordingExecutor]:
    return RecordingExecutor


@pytest.fixture
def ctx(tmp_path: Path) -> BuildContext:
    c = BuildContext(
        work_dir=tmp_path / "work",
        staging_root=tmp_path / "pkg",
        sources_dir=tmp_path / "sources",
        store_dir=tmp_path / "packages",
        log_dir=tmp_path / "log",
        recipes_dir=tmp_path / "recipes",
        archive_ext="tar.gz",
        fakeroot=False,
    )
    c.ensure_dirs()
    c.recipes_dir.mkdir()
    return c


@pytest.fixture
def store(ctx: BuildContext) -> MetadataStore:
    return MetadataStore(ctx)


@pytest.fixture
def index(ctx: BuildContext) -> PackageIndex:
    return PackageIndex(ctx.index_file)


@pytest.fixture
def pipeline(ctx: BuildContext, store: MetadataStore, index: PackageIndex) -> BuildPipeline:
    return BuildPipeline(ctx, store, index, RecipeBook(ctx.recipes_dir), SourceFetcher(ctx))


@pytest.fixture
def build_log(tmp_path: Path) -> Path:
    """默认 BUILD 命令把包名追加到这里，用于观察构建顺序"""
    return tmp_path / "build.log"


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[..., Path]:
    """生成 <name>-<version>.tar.gz，顶层目录为 <name>-<version>/"""

    def _make(name: str, version: str = "1.0", files: dict[str, str] | None = None) -> Path:
        files = files if files is not None else {"README": f"{name}\n"}
        out = tmp_path / "upstream" / f"{name}-{version}.tar.gz"
        out.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(out, "w:gz") as tf:
            for rel, content in files.items():
                data = content.encode()
                info = tarfile.TarInfo(f"{name}-{version}/{rel}")
                info.size = len(data)
                info.mode = 0o644
                tf.addfile(info, io.BytesIO(data))
        return out

    return _make


@pytest.fixture
def write_recipe(
    ctx: BuildContext, make_source: Callable[..., Path], build_log: Path,
) -> Callable[..., Path]:
    """在配方目录写入 <name>.recipe，源码为本地生成的 tar.gz"""

    def _write(
        name: str,
        version: str = "1.0",
        *,
        depends: tuple[str, ...] = (),
        build: str | None = None,
        install: str | None = None,
        extra_sources: tuple[str, ...] = (),
        patches: tuple[str, ...] = (),
    ) -> Path:
        src = make_source(name, version)
        build = build if build is not None else f'echo "$NAME" >> "{build_log}"'
        install = install if install is not None else DEFAULT_INSTALL
        lines = [
            f"NAME={name}",
            f"VERSION={version}",
            f"SOURCE={src}",
            f"BUILD='{build}'",
            f"INSTALL='{install}'",
        ]
        if depends:
            lines.append(f'DEPENDS="{" ".join(depends)}"')
        if extra_sources:
            lines.append(f'EXTRA_SOURCES="{" ".join(extra_sources)}"')
        if patches:
            lines.append(f'PATCHES="{" ".join(patches)}"')
        path = ctx.recipes_dir / f"{name}.recipe"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def add_descriptor(store: MetadataStore) -> Callable[..., Descriptor]:
    """直接向包仓库写入描述符（不经过构建）"""

    def _add(
        name: str, version: str = "1.0", depends: tuple[str, ...] = (),
        files: list[str] | None = None,
    ) -> Descriptor:
        desc = Descriptor(name=name, version=version, depends=list(depends), files=files)
        store.write_descriptor(desc)
        return desc

    return _add
