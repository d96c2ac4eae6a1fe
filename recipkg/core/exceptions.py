"""统一异常体系

所有业务异常继承 RecipkgError，CLI 层据此输出一行友好提示并返回非零退出码。
警告类（RecipkgWarning 子类）从不抛出，只收集到结果对象并写入日志。
"""

from __future__ import annotations


class RecipkgError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(RecipkgError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class RecipeError(RecipkgError):
    """配方缺少必填字段或格式错误"""

    code = "RECIPE_ERROR"


class FetchError(RecipkgError):
    """源码地址协议不支持或下载失败"""

    code = "FETCH_ERROR"


class ExtractError(RecipkgError):
    """归档格式不支持或解压失败"""

    code = "EXTRACT_ERROR"


class PatchError(RecipkgError):
    """补丁应用失败"""

    code = "PATCH_ERROR"


class ExecutionError(RecipkgError):
    """构建/安装命令或外部工具执行失败"""

    code = "EXECUTION_ERROR"


class UnresolvedDependencyError(RecipkgError):
    """递归安装时依赖找不到配方"""

    code = "UNRESOLVED_DEPENDENCY"

    def __init__(self, name: str, required_by: str) -> None:
        super().__init__(f"依赖 '{name}' 的配方不存在 (被 '{required_by}' 依赖)")
        self.name = name
        self.required_by = required_by


class CycleError(RecipkgError):
    """依赖边集合存在环"""

    code = "DEPENDENCY_CYCLE"

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"检测到依赖环: {' -> '.join(cycle)}")
        self.cycle = cycle


class LockError(RecipkgError):
    """另一个调用正占用暂存根目录"""

    code = "LOCKED"


class StateError(RecipkgError):
    """流水线状态迁移非法"""

    code = "STATE_ERROR"


# =========================================================================
# 警告（不抛出）
# =========================================================================


class RecipkgWarning(UserWarning):
    """基础警告"""


class MissingDependencyWarning(RecipkgWarning):
    """依赖在包仓库中没有描述符，已从结果中排除"""


class ManifestMissingWarning(RecipkgWarning):
    """文件清单缺失，卸载退化为启发式模式"""


class UnsupportedSourceWarning(RecipkgWarning):
    """附加源码格式不支持，已跳过解压"""
