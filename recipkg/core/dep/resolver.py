"""依赖解析器

职责:
- 以包仓库中全部描述符建立依赖边集合
- 计算全图拓扑序（全局环检测：仓库中任意位置有环都会失败）
- 从请求的包名出发做可达性标记，把全序过滤到可达集合
- 保证每个显式请求的包名都出现在输出中，即使无法解析

用法:
    resolver = DependencyResolver(store)
    resolution = resolver.resolve(["hello"])
    resolution.order      # ["libfoo", "hello"]
    resolution.warnings   # [MissingDependencyWarning(...), ...]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from recipkg.core.dep.graph import DependencyGraph
from recipkg.core.exceptions import MissingDependencyWarning, RecipkgWarning
from recipkg.core.models import Descriptor, Resolution
from recipkg.core.store import MetadataStore

logger = logging.getLogger(__name__)


class DependencyResolver:
    """依赖解析器 - 只读包仓库，不触发任何构建"""

    def __init__(self, store: MetadataStore) -> None:
        self.store = store
        self.exist: dict[str, Descriptor] = {}
        self.marked: set[str] = set()
        self.warnings: list[RecipkgWarning] = []

    def build_graph(self) -> DependencyGraph:
        return DependencyGraph.from_descriptors(self.store.list_descriptors())

    def resolve(self, requested: Iterable[str]) -> Resolution:
        """返回依赖在前的安装顺序

        异常:
            CycleError: 依赖边集合中存在环（与请求是否触及该环无关）
        """
        requested = list(dict.fromkeys(requested))
        self.exist = self.store.latest_by_name()
        self.marked = set()
        self.warnings = []

        total = self.build_graph().topological_order()

        for name in requested:
            self._mark(name)

        order = [n for n in total if n in self.marked]
        emitted = set(order)
        for name in requested:
            if name not in emitted:
                self._warn(MissingDependencyWarning(
                    f"包 '{name}' 未找到描述符，直接加入结果"
                ))
                order.append(name)
                emitted.add(name)

        logger.info("解析完成: %s -> %s", " ".join(requested), " ".join(order))
        return Resolution(order=order, warnings=list(self.warnings))

    def _mark(self, root: str) -> None:
        """深度优先标记可达集合；仓库中不存在的包告警且不标记、不展开"""
        stack = [(root, "")]
        while stack:
            name, parent = stack.pop()
            if name in self.marked:
                continue
            desc = self.exist.get(name)
            if desc is None:
                if parent:
                    self._warn(MissingDependencyWarning(
                        f"依赖 '{name}' (被 '{parent}' 依赖) 在包仓库中没有描述符，已排除"
                    ))
                continue
            self.marked.add(name)
            for dep in reversed(desc.depends):
                stack.append((dep, name))

    def _warn(self, warning: RecipkgWarning) -> None:
        if any(str(w) == str(warning) for w in self.warnings):
            return
        logger.warning("%s", warning)
        self.warnings.append(warning)
