"""Tests for job registry."""

import pytest
from jobengine.jobs.registry import JobRegistry
from jobengine.jobs.types import JobType


class TestJobRegistry:
    def test_register_handler(self):
        registry = JobRegistry()

        async def dummy_handler(job, ctx):
            return {"ok": True}

        registry.register(JobType.IMPORT, dummy_handler)
        assert registry.get_handler(JobType.IMPORT) == dummy_handler

    def test_get_unregistered_handler_raises(self):
        registry = JobRegistry()
        with pytest.raises(KeyError, match="cleanup"):
            registry.get_handler(JobType.CLEANUP)

    def test_decorator_registration(self):
        registry = JobRegistry()

        @registry.handler(JobType.EXPORT)
        async def export_handler(job, ctx):
            pass

        assert registry.get_handler(JobType.EXPORT) == export_handler

    def test_registered_types_sorted(self):
        registry = JobRegistry()

        async def noop(job, ctx):
            return None

        registry.register(JobType.VERIFICATION, noop)
        registry.register(JobType.CLEANUP, noop)
        assert registry.registered_types() == [JobType.CLEANUP, JobType.VERIFICATION]

    def test_re_register_replaces(self):
        registry = JobRegistry()

        async def first(job, ctx):
            return None

        async def second(job, ctx):
            return None

        registry.register(JobType.IMPORT, first)
        registry.register(JobType.IMPORT, second)
        assert registry.get_handler(JobType.IMPORT) is second

    def test_has_handler_accepts_string_type(self):
        registry = JobRegistry()

        async def noop(job, ctx):
            return None

        assert not registry.has_handler("import")
        registry.register("import", noop)
        assert registry.has_handler(JobType.IMPORT)
