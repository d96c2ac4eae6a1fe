"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换。
配方中的 BUILD / INSTALL 文本只经由这里交给 bash 执行，加载配方时从不执行。
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Protocol

from recipkg.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议 — 抽象子进程调用

    测试时可注入记录型实现，无需 patch subprocess。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else cmd
        try:
            r = subprocess.run(
                args, capture_output=True, text=True,
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(f"命令超时（{timeout}秒）: {args[0]}") from e
        except FileNotFoundError as e:
            raise ExecutionError(f"命令不存在: {args[0]}") from e
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


def shell_script(text: str, *, fakeroot: bool = False) -> list[str]:
    """把配方中的命令文本包装为 bash -c 调用，可选套一层 fakeroot"""
    args = ["bash", "-c", text]
    if fakeroot:
        return ["fakeroot", *args]
    return args


def fakeroot_available() -> bool:
    return shutil.which("fakeroot") is not None


def run_cmd(
    cmd: str | list[str], *, cwd: str = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    executor: CommandExecutor | None = None,
    timeout: int | None = None,
) -> CommandResult:
    """执行命令，失败抛 ExecutionError

    Args:
        cmd: 命令字符串或参数列表
        cwd: 工作目录
        env: 环境变量（不传则继承当前进程）
        label: 日志标签
        executor: 执行器（不传则使用 LocalExecutor）
        timeout: 超时秒数
    """
    shown = cmd if isinstance(cmd, str) else shlex.join(cmd)
    logger.info("  %s: %s (cwd=%s)", label, shown, cwd)
    r = (executor or LocalExecutor()).execute(cmd, cwd=cwd, env=env, timeout=timeout)
    if r.stdout:
        logger.debug("  %s stdout:\n%s", label, r.stdout.rstrip())
    if not r.success:
        raise ExecutionError(f"{label}失败 (rc={r.returncode}): {r.stderr[:500]}")
    return r
