"""依赖解析模块

- graph.py: 依赖图与确定性拓扑排序
- resolver.py: 可达性过滤与 resolve_deps 语义
"""

from recipkg.core.dep.graph import DependencyGraph
from recipkg.core.dep.resolver import DependencyResolver

__all__ = [
    "DependencyGraph",
    "DependencyResolver",
]
