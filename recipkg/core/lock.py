"""调用级互斥锁

暂存根目录、源码区、包仓库与索引都是进程间共享的可变资源，
同一时刻只允许一个顶层调用（install / remove / resolve_deps ...）操作它们。
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
from collections.abc import Iterator

from recipkg.core.context import BuildContext
from recipkg.core.exceptions import LockError

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def invocation_lock(ctx: BuildContext) -> Iterator[None]:
    """对 <log_dir>/.lock 加非阻塞排他 flock，已被占用时抛 LockError"""
    ctx.log_dir.mkdir(parents=True, exist_ok=True)
    with ctx.lock_file.open("a+", encoding="utf-8") as lf:
        try:
            fcntl.flock(lf.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise LockError(
                f"另一个 recipkg 调用正在使用 {ctx.staging_root} (锁: {ctx.lock_file})"
            ) from e
        lf.seek(0)
        lf.truncate()
        lf.write(f"{os.getpid()}\n")
        lf.flush()
        try:
            yield
        finally:
            fcntl.flock(lf.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def acquire(ctx: BuildContext) -> Iterator[BuildContext]:
    """顶层调用的作用域：加锁并确保各目录存在"""
    with invocation_lock(ctx):
        ctx.ensure_dirs()
        yield ctx
