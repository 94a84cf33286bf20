"""Tests for the run-scoped staging directory."""

import pytest

from narrator_action.context import RunContext


class TestRunContext:
    def test_lazy_creation(self):
        ctx = RunContext()
        assert ctx._root is None
        root = ctx.root
        assert root.is_dir()
        ctx.close()

    def test_staging_path_creates_dirs(self):
        with RunContext() as ctx:
            path = ctx.staging_path("baseline", "facts")
            assert path.is_dir()
            assert path.parent.parent == ctx.root

    def test_removed_on_exit(self):
        with RunContext() as ctx:
            root = ctx.staging_path("x").parent
        assert not root.exists()

    def test_removed_on_error(self):
        with pytest.raises(KeyError):
            with RunContext() as ctx:
                root = ctx.root
                raise KeyError("boom")
        assert not root.exists()

    def test_closed_context_rejects_use(self):
        ctx = RunContext()
        ctx.close()
        with pytest.raises(RuntimeError):
            ctx.staging_path("x")
