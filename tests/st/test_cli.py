"""命令行端到端测试（CliRunner + 真实 bash 构建本地配方）"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

import recipkg.core.config as cfgmod
from recipkg.cli import main
from recipkg.core.context import BuildContext
from recipkg.core.lock import invocation_lock
from recipkg.core.models import Descriptor
from recipkg.services.container import reset_container
from recipkg.utils.logger import reset_logging


@pytest.fixture
def run(ctx: BuildContext, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """以 ctx 的目录作为环境变量调用 CLI"""
    env = {
        "RECIPKG_WORK": str(ctx.work_dir),
        "RECIPKG_PKG": str(ctx.staging_root),
        "RECIPKG_SOURCES": str(ctx.sources_dir),
        "RECIPKG_PKGOUT": str(ctx.store_dir),
        "RECIPKG_LOGDB": str(ctx.log_dir),
        "RECIPKG_RECIPES": str(ctx.recipes_dir),
        "RECIPKG_FAKEROOT": "never",
        "RECIPKG_CONFIG": str(tmp_path / "absent.yml"),
        "RECIPKG_LOG_LEVEL": "ERROR",
    }
    monkeypatch.setattr(cfgmod, "_current", None)
    runner = CliRunner()

    def _run(*args: str, **overrides: str):
        return runner.invoke(main, list(args), env={**env, **overrides})

    yield _run
    reset_container()
    reset_logging()


class TestResolveDeps:
    def test_prints_order(self, run, add_descriptor: Callable[..., Descriptor]) -> None:
        add_descriptor("libfoo")
        add_descriptor("hello", depends=("libfoo",))
        result = run("resolve_deps", "hello")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["libfoo", "hello"]

    def test_cycle_fails_without_order(self, run, add_descriptor: Callable[..., Descriptor]) -> None:
        add_descriptor("a", depends=("b",))
        add_descriptor("b", depends=("a",))
        result = run("resolve_deps", "a")
        assert result.exit_code == 1
        assert "检测到依赖环: a -> b -> a" in result.output
        assert "a" not in result.output.splitlines()

    def test_unknown_name_echoed(self, run) -> None:
        result = run("resolve_deps", "ghost")
        assert result.exit_code == 0
        assert result.output.splitlines() == ["ghost"]

    def test_requires_names(self, run) -> None:
        assert run("resolve_deps").exit_code == 2


@pytest.mark.skipif(shutil.which("bash") is None, reason="需要 bash")
class TestInstallRemove:
    def test_full_cycle(self, run, write_recipe: Callable[..., Path], ctx: BuildContext) -> None:
        write_recipe("libfoo")
        write_recipe("hello", depends=("libfoo",))

        result = run("install", "hello")
        assert result.exit_code == 0, result.output
        assert "已安装: hello-1.0" in result.output
        assert "本次构建: libfoo hello" in result.output

        listing = run("list")
        assert "hello" in listing.output and "libfoo" in listing.output

        info = run("info", "hello")
        assert "依赖:     libfoo" in info.output
        assert "文件数:   2" in info.output

        result = run("remove", "hello")
        assert result.exit_code == 0, result.output
        assert not (ctx.staging_root / "var" / "bin" / "hello").exists()
        assert "hello " not in run("list").output

    def test_install_failure_exit_code(self, run, write_recipe: Callable[..., Path]) -> None:
        write_recipe("broken", build="exit 7")
        result = run("install", "broken")
        assert result.exit_code == 1
        assert "build broken失败" in result.output

    def test_missing_recipe(self, run) -> None:
        result = run("install", "ghost")
        assert result.exit_code == 1
        assert "配方不存在" in result.output

    def test_single_steps(self, run, write_recipe: Callable[..., Path], ctx: BuildContext) -> None:
        write_recipe("hello")
        assert run("prepare", "hello").exit_code == 0
        assert (ctx.work_dir / "hello-1.0" / "README").exists()
        assert run("build", "hello").exit_code == 0
        result = run("package", "hello")
        assert result.exit_code == 0, result.output
        assert (ctx.store_dir / "hello-1.0.meta").exists()


class TestMisc:
    def test_remove_unknown_exit_code(self, run) -> None:
        result = run("remove", "ghost")
        assert result.exit_code == 1
        assert "未安装" in result.output

    def test_info_unknown(self, run) -> None:
        result = run("info", "ghost")
        assert result.exit_code == 1
        assert "没有 'ghost' 的描述符" in result.output

    def test_list_empty(self, run) -> None:
        assert "没有已安装的包" in run("list").output

    def test_locked(self, run, ctx: BuildContext) -> None:
        with invocation_lock(ctx):
            result = run("resolve_deps", "x")
        assert result.exit_code == 1
        assert "另一个 recipkg 调用" in result.output

    def test_invalid_config(self, run, tmp_path: Path) -> None:
        cfg = tmp_path / "bad.yml"
        cfg.write_text("use_fakeroot: sometimes\n")
        result = run("--config", str(cfg), "list")
        assert result.exit_code == 1
        assert "use_fakeroot" in result.output

    def test_unusable_log_dir_is_one_line_error(
        self, run, tmp_path: Path,
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        result = run("resolve_deps", "hello", RECIPKG_LOGDB=str(blocker / "log"))
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Error: " in result.output
        assert "Traceback" not in result.output

    def test_version(self, run) -> None:
        result = run("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output
