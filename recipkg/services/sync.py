"""包仓库同步到 git 远端

流程: 浅克隆远端 → 把 store_dir 镜像到仓库内指定目录（删除多余文件）
     → git add → 有变更时提交并推送。
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from recipkg.core.context import BuildContext
from recipkg.core.exceptions import ExecutionError, FetchError
from recipkg.utils.shell import run_cmd

logger = logging.getLogger(__name__)


def mirror_tree(src: Path, dest: Path) -> None:
    """使 dest 与 src 内容一致（等价于 rsync -a --delete）"""
    dest.mkdir(parents=True, exist_ok=True)
    wanted = {p.name for p in src.iterdir()} if src.is_dir() else set()
    for entry in dest.iterdir():
        if entry.name not in wanted:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
    if src.is_dir():
        shutil.copytree(src, dest, dirs_exist_ok=True, symlinks=True)


class StoreSync:
    """把包仓库目录同步进 git 仓库"""

    def __init__(self, ctx: BuildContext) -> None:
        self.ctx = ctx

    def _git(self, args: list[str], cwd: Path, label: str) -> str:
        r = run_cmd(
            ["git", *args], cwd=str(cwd), label=label, executor=self.ctx.executor,
        )
        return r.stdout

    def sync(self, repo_url: str, dir_in_repo: str) -> bool:
        """同步 store_dir 到 repo_url 的 dir_in_repo 目录，返回是否产生了新提交"""
        if Path(dir_in_repo).is_absolute() or ".." in Path(dir_in_repo).parts:
            raise FetchError(f"仓库内目录必须是相对路径: {dir_in_repo}")

        with tempfile.TemporaryDirectory(prefix="recipkg-sync-") as tmp:
            checkout = Path(tmp) / "repo"
            logger.info("克隆仓库 %s -> %s", repo_url, checkout)
            try:
                self._git(["clone", "--depth", "1", repo_url, str(checkout)], Path(tmp), "git clone")
            except ExecutionError as e:
                raise FetchError(f"克隆 {repo_url} 失败，请检查地址与访问权限: {e}") from e

            target = checkout / dir_in_repo
            logger.info("复制包仓库 %s -> %s", self.ctx.store_dir, target)
            mirror_tree(self.ctx.store_dir, target)

            self._git(["add", "-A", dir_in_repo], checkout, "git add")
            status = self._git(["status", "--porcelain", "--", dir_in_repo], checkout, "git status")
            if not status.strip():
                logger.info("没有需要提交的变更")
                return False

            stamp = datetime.now(tz=timezone.utc).isoformat(timespec="seconds")
            self._git(["commit", "-m", f"Sync packages: {stamp}"], checkout, "git commit")
            logger.info("推送到 origin...")
            self._git(["push"], checkout, "git push")

        logger.info("同步完成")
        return True
