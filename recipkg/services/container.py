"""服务容器 — 统一依赖注入

所有组件通过容器获取，同一容器内共享一个 BuildContext。
CLI 通过 get_container() 获取组件，而非直接 import 构造。

依赖关系图（→ 表示依赖）:
  pipeline → store, index, recipes, fetcher
  resolver → store
  remover  → store, index

用法:
    container = ServiceContainer(config=cfg)
    with container.session() as c:
        c.pipeline.install("hello")
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

from recipkg.core.context import BuildContext
from recipkg.core.lock import acquire

if TYPE_CHECKING:
    from recipkg.core.config import Config
    from recipkg.core.dep.resolver import DependencyResolver
    from recipkg.core.index import PackageIndex
    from recipkg.core.pipeline import BuildPipeline
    from recipkg.core.recipe import RecipeBook
    from recipkg.core.removal import RemovalEngine
    from recipkg.core.store import MetadataStore
    from recipkg.services.fetcher import SourceFetcher
    from recipkg.services.sync import StoreSync
    from recipkg.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        executor: CommandExecutor | None = None,
        context: BuildContext | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if context is None:
            if config is None:
                from recipkg.core.config import get_config
                config = get_config()
            context = BuildContext.from_config(config, executor=executor)
        self._ctx = context

    @property
    def context(self) -> BuildContext:
        return self._ctx

    @contextlib.contextmanager
    def session(self) -> Iterator[ServiceContainer]:
        """顶层调用作用域：持有调用级锁"""
        with acquire(self._ctx):
            yield self

    # ---- 核心组件 ----

    @property
    def store(self) -> MetadataStore:
        if "store" not in self._instances:
            from recipkg.core.store import MetadataStore
            self._instances["store"] = MetadataStore(self._ctx)
        return self._instances["store"]  # type: ignore[return-value]

    @property
    def index(self) -> PackageIndex:
        if "index" not in self._instances:
            from recipkg.core.index import PackageIndex
            self._instances["index"] = PackageIndex(self._ctx.index_file)
        return self._instances["index"]  # type: ignore[return-value]

    @property
    def recipes(self) -> RecipeBook:
        if "recipes" not in self._instances:
            from recipkg.core.recipe import RecipeBook
            self._instances["recipes"] = RecipeBook(self._ctx.recipes_dir)
        return self._instances["recipes"]  # type: ignore[return-value]

    @property
    def resolver(self) -> DependencyResolver:
        if "resolver" not in self._instances:
            from recipkg.core.dep.resolver import DependencyResolver
            self._instances["resolver"] = DependencyResolver(self.store)
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def pipeline(self) -> BuildPipeline:
        if "pipeline" not in self._instances:
            from recipkg.core.pipeline import BuildPipeline
            self._instances["pipeline"] = BuildPipeline(
                self._ctx, self.store, self.index, self.recipes, self.fetcher,
            )
        return self._instances["pipeline"]  # type: ignore[return-value]

    @property
    def remover(self) -> RemovalEngine:
        if "remover" not in self._instances:
            from recipkg.core.removal import RemovalEngine
            self._instances["remover"] = RemovalEngine(self._ctx, self.store, self.index)
        return self._instances["remover"]  # type: ignore[return-value]

    # ---- 外部协作者 ----

    @property
    def fetcher(self) -> SourceFetcher:
        if "fetcher" not in self._instances:
            from recipkg.services.fetcher import SourceFetcher
            self._instances["fetcher"] = SourceFetcher(self._ctx)
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def sync(self) -> StoreSync:
        if "sync" not in self._instances:
            from recipkg.services.sync import StoreSync
            self._instances["sync"] = StoreSync(self._ctx)
        return self._instances["sync"]  # type: ignore[return-value]


_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """获取全局容器（首次调用时按当前配置创建）"""
    global _container  # noqa: PLW0603
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """丢弃全局容器，下次 get_container() 按最新配置重建"""
    global _container  # noqa: PLW0603
    _container = None
