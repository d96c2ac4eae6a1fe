"""ServiceContainer 单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

import recipkg.core.config as cfgmod
from recipkg.core.exceptions import LockError
from recipkg.core.lock import invocation_lock
from recipkg.services.container import (
    ServiceContainer,
    get_container,
    reset_container,
)


@pytest.fixture(autouse=True)
def _setup_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """确保测试有独立的配置和数据目录"""
    cfg = cfgmod.Config(
        work_dir=str(tmp_path / "work"),
        staging_root=str(tmp_path / "pkg"),
        sources_dir=str(tmp_path / "sources"),
        store_dir=str(tmp_path / "packages"),
        log_dir=str(tmp_path / "log"),
        recipes_dir=str(tmp_path / "recipes"),
        use_fakeroot="never",
    )
    monkeypatch.setattr(cfgmod, "_current", cfg)
    reset_container()
    yield
    reset_container()


class TestServiceContainer:
    def test_lazy_loading(self) -> None:
        c = ServiceContainer()
        assert len(c._instances) == 0
        _ = c.store
        assert "store" in c._instances

    def test_shared_instances(self) -> None:
        c = ServiceContainer()
        assert c.store is c.store
        assert c.pipeline.store is c.store
        assert c.resolver.store is c.store
        assert c.remover.index is c.index

    def test_single_context(self, tmp_path: Path) -> None:
        c = ServiceContainer()
        assert c.context.staging_root == tmp_path / "pkg"
        for svc in (c.store, c.pipeline, c.fetcher, c.remover, c.sync):
            assert svc.ctx is c.context

    def test_executor_injected(self, fake_executor) -> None:
        ex = fake_executor()
        c = ServiceContainer(executor=ex)
        assert c.fetcher.ctx.executor is ex

    def test_session_holds_lock(self) -> None:
        c = ServiceContainer()
        with c.session():
            with pytest.raises(LockError):
                with invocation_lock(c.context):
                    pass


class TestGlobalContainer:
    def test_get_container_singleton(self) -> None:
        assert get_container() is get_container()

    def test_reset_container(self) -> None:
        c1 = get_container()
        reset_container()
        assert get_container() is not c1
