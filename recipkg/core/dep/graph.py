"""依赖图与拓扑排序

边 (dep, pkg) 表示 pkg 依赖 dep，排序结果中 dep 总在 pkg 之前。
拓扑排序使用 Kahn 算法，入度为 0 的节点按名称字典序出队，
相同输入总得到相同输出。
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable

from recipkg.core.exceptions import CycleError
from recipkg.core.models import Descriptor


class DependencyGraph:
    """包名级依赖图（不含版本约束）"""

    def __init__(self) -> None:
        self.nodes: set[str] = set()
        self.dependents: dict[str, set[str]] = {}   # dep -> {pkg}
        self.dependencies: dict[str, set[str]] = {}  # pkg -> {dep}

    @classmethod
    def from_descriptors(cls, descriptors: Iterable[Descriptor]) -> DependencyGraph:
        """以仓库中全部描述符的 depends 并集建图"""
        graph = cls()
        for desc in descriptors:
            graph.add_node(desc.name)
            for dep in desc.depends:
                graph.add_edge(dep, desc.name)
        return graph

    def add_node(self, name: str) -> None:
        self.nodes.add(name)

    def add_edge(self, dep: str, pkg: str) -> None:
        self.nodes.update((dep, pkg))
        self.dependents.setdefault(dep, set()).add(pkg)
        self.dependencies.setdefault(pkg, set()).add(dep)

    def edges(self) -> list[tuple[str, str]]:
        return sorted(
            (dep, pkg) for dep, pkgs in self.dependents.items() for pkg in pkgs
        )

    def topological_order(self) -> list[str]:
        """全图的确定性拓扑序；图中任意位置存在环都抛 CycleError"""
        indegree = {n: len(self.dependencies.get(n, ())) for n in self.nodes}
        ready = [n for n, d in indegree.items() if d == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for pkg in self.dependents.get(node, ()):
                indegree[pkg] -= 1
                if indegree[pkg] == 0:
                    heapq.heappush(ready, pkg)

        if len(order) != len(self.nodes):
            remaining = {n for n, d in indegree.items() if d > 0}
            raise CycleError(self._find_cycle(remaining))
        return order

    def _find_cycle(self, remaining: set[str]) -> list[str]:
        """在 Kahn 剩余节点中找出一个具体的环，按"依赖于"方向列出并首尾相接

        剩余节点在剩余子图内入度都大于 0，沿依赖边回溯必然回到已访问节点。
        """
        cur = min(remaining)
        path: list[str] = []
        seen: dict[str, int] = {}
        while cur not in seen:
            seen[cur] = len(path)
            path.append(cur)
            cur = min(d for d in self.dependencies[cur] if d in remaining)
        return [*path[seen[cur]:], cur]
