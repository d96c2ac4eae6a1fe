"""recipkg - 基于配方的源码包管理器"""

__version__ = "0.1.0"
