"""Unit tests for the shared ARQ enqueue pool."""

import pytest
from libs.common import arq_config


class FakePool:
    def __init__(self):
        self.jobs = []
        self.closed = False

    async def enqueue_job(self, function_name, *args, _job_id=None):
        self.jobs.append((function_name, args, _job_id))

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_create_pool(monkeypatch):
    created = []

    async def fake(settings):
        pool = FakePool()
        created.append(pool)
        return pool

    monkeypatch.setattr(arq_config, "create_pool", fake)
    monkeypatch.setattr(arq_config, "_pool", None)
    return created


@pytest.mark.asyncio
@pytest.mark.unit
async def test_enqueue_reuses_one_pool(fake_create_pool):
    await arq_config.enqueue("task_a", "x", job_id="job-1")
    await arq_config.enqueue("task_b", "y")

    assert len(fake_create_pool) == 1
    assert fake_create_pool[0].jobs == [
        ("task_a", ("x",), "job-1"),
        ("task_b", ("y",), None),
    ]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_close_pool_resets_shared_pool(fake_create_pool):
    await arq_config.enqueue("task_a")
    first = fake_create_pool[0]

    await arq_config.close_pool()
    await arq_config.close_pool()
    await arq_config.enqueue("task_b")

    assert first.closed is True
    assert len(fake_create_pool) == 2
    assert fake_create_pool[1].jobs == [("task_b", (), None)]
