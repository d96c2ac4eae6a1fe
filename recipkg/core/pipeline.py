"""构建/安装流水线（按包推进的状态机）

每个包依次经过:
    Prepared → Built → Installed → Recorded → Packaged
已安装的依赖直接记为 AlreadyInstalled，跳过全部步骤。

install() 递归处理依赖，visited 集合作用于一次顶层调用，保证菱形依赖中
公共依赖至多构建一次。任何一步失败立即抛出并中止整个顶层调用；
同一调用中此前已完成的包保持已安装状态，不做回滚。

用法:
    pipeline = BuildPipeline(ctx, store, index, recipes, fetcher)
    descriptor = pipeline.install("hello")
    pipeline.installed      # ["libfoo", "hello"]
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from pathlib import Path

from recipkg.core.context import BuildContext
from recipkg.core.exceptions import (
    RecipeError,
    StateError,
    UnresolvedDependencyError,
    UnsupportedSourceWarning,
)
from recipkg.core.index import PackageIndex
from recipkg.core.models import PIPELINE_ORDER, Descriptor, PackageState, Recipe
from recipkg.core.recipe import RecipeBook
from recipkg.core.store import MetadataStore
from recipkg.services.fetcher import SourceFetcher, archive_format
from recipkg.utils.shell import run_cmd, shell_script

logger = logging.getLogger(__name__)

_TAR_MODES = {
    "tar.xz": "w:xz",
    "tar.gz": "w:gz",
    "tar.bz2": "w:bz2",
    "tar": "w",
}


class BuildPipeline:
    """配方驱动的构建/安装/打包流水线"""

    def __init__(
        self,
        ctx: BuildContext,
        store: MetadataStore,
        index: PackageIndex,
        recipes: RecipeBook,
        fetcher: SourceFetcher,
    ) -> None:
        self.ctx = ctx
        self.store = store
        self.index = index
        self.recipes = recipes
        self.fetcher = fetcher
        self.visited: set[str] = set()
        self.states: dict[str, PackageState] = {}
        self.installed: list[str] = []
        self.warnings: list[UnsupportedSourceWarning] = []

    # =====================================================================
    # 顶层入口
    # =====================================================================

    def install(self, recipe_ref: str) -> Descriptor:
        """安装配方及其全部未安装的依赖，返回顶层包的描述符"""
        self.visited = set()
        self.states = {}
        self.installed = []
        self.warnings = []
        recipe = self.recipes.load(recipe_ref)
        descriptor = self._install(recipe)
        if descriptor is None:
            raise StateError(f"包 {recipe.name} 未完成安装")
        logger.info("安装完成: %s (本次共构建 %d 个包)", recipe.key, len(self.installed))
        return descriptor

    def _install(self, recipe: Recipe) -> Descriptor | None:
        if recipe.name in self.visited:
            if recipe.name not in self.states:
                logger.warning("检测到依赖环，跳过重复进入: %s", recipe.name)
            return None
        self.visited.add(recipe.name)

        for dep in recipe.depends:
            if self.is_installed(dep):
                logger.info("依赖 %s 已安装，跳过", dep)
                self.states.setdefault(dep, PackageState.ALREADY_INSTALLED)
                continue
            dep_path = self.recipes.find(dep)
            if dep_path is None:
                raise UnresolvedDependencyError(dep, recipe.name)
            logger.info("安装依赖: %s (被 %s 依赖)", dep, recipe.name)
            self._install(self.recipes.load(str(dep_path)))

        self.prepare(recipe)
        self.build(recipe)
        self.install_files(recipe)
        manifest = self.record(recipe)
        descriptor = self.package(recipe, manifest)
        self.installed.append(recipe.name)
        return descriptor

    def is_installed(self, name: str) -> bool:
        """索引中有记录，或日志目录中留有该包的文件清单"""
        return self.index.lookup(name) is not None or self.store.has_manifest(name)

    # =====================================================================
    # 状态迁移
    # =====================================================================

    def _advance(self, recipe: Recipe, state: PackageState) -> None:
        """推进状态；已有状态时只允许进入其直接后继

        单步命令（prepare / build / package）独立运行时没有前序状态，直接放行；
        install 递归中的包必须从 Prepared 开始。
        """
        current = self.states.get(recipe.name)
        if current is None:
            allowed = state is PIPELINE_ORDER[0] or recipe.name not in self.visited
        elif current in PIPELINE_ORDER:
            pos = PIPELINE_ORDER.index(current)
            allowed = pos + 1 < len(PIPELINE_ORDER) and PIPELINE_ORDER[pos + 1] is state
        else:
            allowed = False
        if not allowed:
            source = current.value if current else "(无)"
            raise StateError(f"包 {recipe.name} 不能从 {source} 进入 {state.value}")
        self.states[recipe.name] = state
        logger.debug("%s -> %s", recipe.name, state.value)

    def source_dir(self, recipe: Recipe) -> Path:
        return self.ctx.work_dir / recipe.package_dir

    # =====================================================================
    # 各步骤
    # =====================================================================

    def prepare(self, recipe: Recipe) -> Path:
        """获取主源码与附加源码，解压到工作区，按顺序应用补丁"""
        logger.info("[%s] 准备源码", recipe.key)
        self._acquire(recipe.primary_source, required=True)
        for src in recipe.extra_sources:
            self._acquire(src, required=self.ctx.strict_extra_sources)

        src_dir = self.source_dir(recipe)
        if not src_dir.is_dir():
            raise RecipeError(
                f"解压后找不到包目录 {src_dir}，请检查配方的 PKGDIR"
            )
        if recipe.patches:
            base = recipe.path.parent if recipe.path else None
            self.fetcher.apply_patches(recipe.patches, src_dir, base_dir=base)
        self._advance(recipe, PackageState.PREPARED)
        return src_dir

    def _acquire(self, location: str, *, required: bool) -> None:
        fetched = self.fetcher.fetch(location)
        if fetched.is_dir():
            return
        if archive_format(fetched.name) is None and not required:
            warning = UnsupportedSourceWarning(f"附加源码格式不支持，未解压: {fetched.name}")
            logger.warning("%s", warning)
            self.warnings.append(warning)
            return
        self.fetcher.extract(fetched)

    def build(self, recipe: Recipe) -> None:
        """在解压后的包目录中执行 BUILD 文本"""
        logger.info("[%s] 构建", recipe.key)
        run_cmd(
            shell_script(recipe.build_command),
            cwd=str(self.source_dir(recipe)),
            env=self._env(recipe),
            label=f"build {recipe.name}",
            executor=self.ctx.executor,
            timeout=self.ctx.command_timeout,
        )
        self._advance(recipe, PackageState.BUILT)

    def install_files(self, recipe: Recipe) -> None:
        """清空暂存根目录后以 fakeroot 执行 INSTALL 文本，再把 usr/bin 移入规范二进制目录"""
        logger.info("[%s] 安装到暂存根目录 %s", recipe.key, self.ctx.staging_root)
        self.ctx.clear_staging()
        try:
            run_cmd(
                shell_script(recipe.install_command, fakeroot=self.ctx.fakeroot),
                cwd=str(self.source_dir(recipe)),
                env=self._env(recipe),
                label=f"install {recipe.name}",
                executor=self.ctx.executor,
                timeout=self.ctx.command_timeout,
            )
            self._relocate_binaries()
        except BaseException:
            # 半成品不能残留到下一个包的清单快照里
            self.ctx.clear_staging()
            raise
        self._advance(recipe, PackageState.INSTALLED)

    def _relocate_binaries(self) -> None:
        bin_dir = self.ctx.staging_bin
        bin_dir.mkdir(parents=True, exist_ok=True)
        usr_bin = self.ctx.staging_path("/usr/bin")
        if not usr_bin.is_dir() or usr_bin.resolve() == bin_dir.resolve():
            return
        for entry in sorted(usr_bin.iterdir()):
            target = bin_dir / entry.name
            if target.exists() or target.is_symlink():
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                else:
                    target.unlink()
            shutil.move(str(entry), str(target))
        if usr_bin.is_symlink():
            usr_bin.unlink()
        else:
            shutil.rmtree(usr_bin)

    def snapshot(self) -> list[str]:
        """暂存根目录下全部普通文件与符号链接，映射为绝对路径，按字典序排列"""
        root = self.ctx.staging_root
        paths = []
        for dirpath, dirnames, filenames in os.walk(root):
            base = Path(dirpath)
            # 指向目录的符号链接不会被 os.walk 进入，但本身是清单条目
            entries = filenames + [d for d in dirnames if (base / d).is_symlink()]
            for name in entries:
                rel = (base / name).relative_to(root)
                paths.append("/" + rel.as_posix())
        return sorted(paths)

    def record(self, recipe: Recipe) -> Path:
        """生成文件清单与安装日志"""
        files = self.snapshot()
        manifest = self.store.write_manifest(recipe.name, recipe.version, files)
        log = self.store.write_install_log(recipe, manifest)
        logger.info("[%s] 已记录 %d 个文件: %s (日志 %s)", recipe.key, len(files), manifest, log)
        self._advance(recipe, PackageState.RECORDED)
        return manifest

    def package(self, recipe: Recipe, manifest: Path | None = None) -> Descriptor:
        """归档暂存根目录，写入描述符，更新已安装索引"""
        archive = self.store.archive_path(recipe.name, recipe.version)
        archive.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, _TAR_MODES[self.ctx.archive_ext]) as tf:
            for entry in sorted(self.ctx.staging_root.iterdir()):
                tf.add(str(entry), arcname=entry.name)

        manifest = manifest or self.store.manifest_path(recipe.name, recipe.version)
        files = None
        if manifest.is_file():
            files = [
                line for line in manifest.read_text(encoding="utf-8").splitlines() if line
            ]
        descriptor = Descriptor.from_recipe(
            recipe,
            bin_dir=self.ctx.bin_dir,
            sources_dir=str(self.ctx.sources_dir),
            files=files,
        )
        self.store.write_descriptor(descriptor)
        self.index.upsert(recipe.name, recipe.version)
        self._advance(recipe, PackageState.PACKAGED)
        logger.info("[%s] 包已生成: %s", recipe.key, archive)
        return descriptor

    def _env(self, recipe: Recipe) -> dict[str, str]:
        return self.ctx.command_env(
            dict(os.environ),
            NAME=recipe.name,
            VERSION=recipe.version,
            PKGDIR=recipe.package_dir,
        )
