"""包仓库同步测试（git 调用经注入的执行器记录，不访问网络）"""

from __future__ import annotations

from pathlib import Path

import pytest

from recipkg.core.context import BuildContext
from recipkg.core.exceptions import FetchError
from recipkg.services.sync import StoreSync, mirror_tree


def _fake_clone(stale: dict[str, str] | None = None):
    """clone 时创建检出目录，可预置远端已有文件"""

    def on_call(args: list[str], cwd: str) -> None:
        if args[:2] == ["git", "clone"]:
            checkout = Path(args[-1])
            (checkout / ".git").mkdir(parents=True)
            for rel, content in (stale or {}).items():
                p = checkout / rel
                p.parent.mkdir(parents=True, exist_ok=True)
                p.write_text(content)

    return on_call


class TestMirrorTree:
    def test_copies_and_deletes_stale(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        (src / "sub").mkdir(parents=True)
        (src / "a.meta").write_text("new")
        (src / "sub" / "b").write_text("b")
        dest = tmp_path / "dest"
        (dest / "old").mkdir(parents=True)
        (dest / "a.meta").write_text("old")
        (dest / "stale.meta").write_text("x")

        mirror_tree(src, dest)

        assert sorted(p.name for p in dest.iterdir()) == ["a.meta", "sub"]
        assert (dest / "a.meta").read_text() == "new"
        assert (dest / "sub" / "b").exists()

    def test_missing_source_empties_dest(self, tmp_path: Path) -> None:
        dest = tmp_path / "dest"
        dest.mkdir()
        (dest / "x").write_text("x")
        mirror_tree(tmp_path / "none", dest)
        assert list(dest.iterdir()) == []


class TestStoreSync:
    def test_commit_and_push_on_change(self, ctx: BuildContext, fake_executor) -> None:
        (ctx.store_dir / "hello-1.0.meta").write_text("NAME=hello\n")
        seen: dict[str, list[str]] = {}
        clone = _fake_clone({"pkgs/stale.meta": "x"})

        def on_call(args: list[str], cwd: str) -> None:
            clone(args, cwd)
            if args[:2] == ["git", "add"]:
                seen["files"] = sorted(p.name for p in (Path(cwd) / "pkgs").iterdir())

        ctx.executor = fake_executor(outputs={"status": "A  pkgs/hello-1.0.meta\n"}, on_call=on_call)

        assert StoreSync(ctx).sync("https://example.com/repo.git", "pkgs") is True
        assert ctx.executor.subcommands() == ["clone", "add", "status", "commit", "push"]
        assert seen["files"] == ["hello-1.0.meta"]
        clone_args = ctx.executor.calls[0][0]
        assert clone_args[2:5] == ["--depth", "1", "https://example.com/repo.git"]
        commit_args = ctx.executor.calls[3][0]
        assert commit_args[3].startswith("Sync packages: ")

    def test_nothing_to_commit(self, ctx: BuildContext, fake_executor) -> None:
        ctx.executor = fake_executor(on_call=_fake_clone())
        assert StoreSync(ctx).sync("https://example.com/repo.git", "pkgs") is False
        assert ctx.executor.subcommands() == ["clone", "add", "status"]

    def test_clone_failure(self, ctx: BuildContext, fake_executor) -> None:
        ctx.executor = fake_executor(returncode=128)
        with pytest.raises(FetchError, match="克隆 .* 失败"):
            StoreSync(ctx).sync("https://example.com/missing.git", "pkgs")

    @pytest.mark.parametrize("directory", ["/abs", "../up", "a/../../b"])
    def test_directory_must_stay_in_repo(self, ctx: BuildContext, directory: str) -> None:
        with pytest.raises(FetchError, match="相对路径"):
            StoreSync(ctx).sync("https://example.com/repo.git", directory)
