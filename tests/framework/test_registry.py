"""Tests for ``commonsync.framework.registry``."""

import pytest

from commonsync.framework.pipelines.base import SyncPipeline
from commonsync.framework.registry import get_pipeline, list_pipelines, register_pipeline


class TestRegistry:
    def test_builtin_pipelines(self):
        assert list_pipelines() == ["events", "quizzes", "registered-users", "sessions", "touches", "users"]
        cls = get_pipeline("touches")
        assert issubclass(cls, SyncPipeline)
        assert cls.name == "touches"

    def test_unknown(self):
        with pytest.raises(KeyError, match="Available"):
            get_pipeline("nope")

    def test_duplicate_name_rejected(self):
        list_pipelines()
        with pytest.raises(ValueError, match="already registered"):

            @register_pipeline("touches")
            class Other(SyncPipeline):
                pass
