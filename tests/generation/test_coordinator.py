"""Tests for GenerationCoordinator retry, completion and failure handling."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest
import pytest_asyncio

from pictora.generation.config import GenerationConfig
from pictora.generation.coordinator import CANCELLED_ERROR, NO_IMAGES_ERROR, GenerationCoordinator
from pictora.generation.events import EventType, TaskEventBus, task_channel
from pictora.generation.extractor import extract_image_urls
from pictora.generation.models import GenerationResult, Task, TaskStatus
from pictora.generation.providers import (
    PlaceholderProvider,
    ProviderAdapter,
    ProviderError,
    ProviderReply,
    is_placeholder_url,
)
from pictora.generation.store import TaskStore


class ScriptedProvider(ProviderAdapter):
    """Replays a list of outcomes: reply text, an exception, or a delay."""

    name = "scripted"

    def __init__(self, outcomes: Sequence[object]):
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []
        self.closed = False

    async def generate(self, prompt, *, negative_prompt="", reference_images=(), count=1):
        self.calls.append(
            {"prompt": prompt, "references": list(reference_images), "count": count}
        )
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, float):
            await asyncio.sleep(outcome)
            return ProviderReply(provider=self.name)
        return ProviderReply(
            images=extract_image_urls(outcome), raw_text=outcome, provider=self.name
        )

    async def aclose(self):
        self.closed = True


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.saved: list[tuple[Task, GenerationResult]] = []
        self.fail = fail

    async def save(self, task, result):
        if self.fail:
            raise RuntimeError("archive offline")
        self.saved.append((task, result))
        return len(result.images)


@pytest.fixture
def config():
    return GenerationConfig(
        max_retries=2,
        retry_delay=0.0,
        provider_timeout=1.0,
        progress_interval=0.01,
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    store = TaskStore(tmp_path / "tasks.db")
    await store.open()
    yield store
    await store.close()


def _coordinator(store, config, provider, **kwargs) -> GenerationCoordinator:
    return GenerationCoordinator(store, config, provider_factory=lambda: provider, **kwargs)


class TestSuccess:
    @pytest.mark.asyncio
    async def test_submit_returns_pending_task_immediately(self, store, config):
        provider = ScriptedProvider([0.2])
        coordinator = _coordinator(store, config, provider)

        task, params = await coordinator.submit("standard", {"description": "red fox in snow"})

        assert task.status == TaskStatus.PENDING
        assert "red fox in snow" in params.prompt
        assert task.logs and "standard" in task.logs[0]
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_completes_with_extracted_images(self, store, config):
        reply = "Here is your image: ![result](https://cdn.example.com/a.png) enjoy!"
        provider = ScriptedProvider([reply])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "fox"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.COMPLETED
        assert final.progress == 100
        assert final.error is None
        assert final.result.images == ["https://cdn.example.com/a.png"]
        assert final.result.provider == "scripted"
        assert len(provider.calls) == 1
        assert provider.closed

    @pytest.mark.asyncio
    async def test_succeeds_on_nth_attempt_without_further_calls(self, store, config):
        provider = ScriptedProvider(
            [
                ProviderError("HTTP 502"),
                "nothing useful here",
                "![ok](https://img.example.com/third.png)",
                "![late](https://img.example.com/never.png)",
            ]
        )
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("figurine", {"description": "knight"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.COMPLETED
        assert final.result.images == ["https://img.example.com/third.png"]
        assert len(provider.calls) == 3
        assert any("Attempt 1 failed: HTTP 502" in line for line in final.logs)
        assert any(f"Attempt 2 failed: {NO_IMAGES_ERROR}" in line for line in final.logs)

    @pytest.mark.asyncio
    async def test_images_capped_to_requested_count(self, store, config):
        reply = " ".join(f"![{i}](https://img.example.com/{i}.png)" for i in range(5))
        provider = ScriptedProvider([reply])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x", "count": 2})
        final = await coordinator.wait(task.id)

        assert final.result.images == [
            "https://img.example.com/0.png",
            "https://img.example.com/1.png",
        ]
        assert provider.calls[0]["count"] == 2

    @pytest.mark.asyncio
    async def test_reference_images_reach_the_provider(self, store, config):
        provider = ScriptedProvider(["![ok](https://img.example.com/a.png)"])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit(
            "image-fusion", {"referenceImages": ["AAAA", "BBBB"], "description": "merge"}
        )
        await coordinator.wait(task.id)

        assert provider.calls[0]["references"] == ["AAAA", "BBBB"]


class TestFailure:
    @pytest.mark.asyncio
    async def test_always_failing_provider_uses_exact_budget(self, store, config):
        provider = ScriptedProvider([ProviderError("upstream down")])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.FAILED
        assert final.progress == 100
        assert final.result is None
        assert final.error == "upstream down"
        assert len(provider.calls) == config.max_retries + 1

    @pytest.mark.asyncio
    async def test_no_urls_exhausts_retries(self, store, config):
        provider = ScriptedProvider(["I made a lovely picture for you!"])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.FAILED
        assert final.error == NO_IMAGES_ERROR
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_timeouts_are_retryable(self, store):
        config = GenerationConfig(max_retries=1, retry_delay=0.0, provider_timeout=0.05)
        provider = ScriptedProvider([5.0])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.FAILED
        assert "timed out" in final.error
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_is_retryable(self, store, config):
        provider = ScriptedProvider([KeyError("choices"), "![ok](https://img.example.com/a.png)"])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.COMPLETED
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_broken_provider_factory_fails_task(self, store, config):
        def factory():
            raise RuntimeError("no adapter")

        coordinator = GenerationCoordinator(store, config, provider_factory=factory)
        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.FAILED
        assert "no adapter" in final.error

    @pytest.mark.asyncio
    async def test_placeholder_fallback_after_exhaustion(self, store):
        config = GenerationConfig(max_retries=0, retry_delay=0.0, placeholder_fallback=True)
        provider = ScriptedProvider([ProviderError("down")])
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.COMPLETED
        assert all(is_placeholder_url(url) for url in final.result.images)
        assert len(provider.calls) == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store, config):
        provider = ScriptedProvider(["![ok](https://img.example.com/a.png)"])
        coordinator = _coordinator(store, config, provider)

        task, params = await coordinator.submit("standard", {"description": "x"})
        assert coordinator.start(task.id, params) is False
        await coordinator.wait(task.id)

        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_shutdown_records_cancellation(self, store, config):
        provider = ScriptedProvider([0.5])
        config.provider_timeout = 10.0
        coordinator = _coordinator(store, config, provider)

        task, _ = await coordinator.submit("standard", {"description": "x"})
        await asyncio.sleep(0.05)
        await coordinator.shutdown()

        final = await store.get(task.id)
        assert final.status == TaskStatus.FAILED
        assert final.error == CANCELLED_ERROR
        assert final.progress == 100
        assert coordinator.active_count == 0

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_until_terminal(self, store, config):
        provider = ScriptedProvider([0.15, "![ok](https://img.example.com/a.png)"])
        config.provider_timeout = 0.1
        events = TaskEventBus()
        coordinator = _coordinator(store, config, provider, events=events)

        task, params = await coordinator.submit("standard", {"description": "x"})
        queue = await events.subscribe(task_channel(task.id))
        await coordinator.wait(task.id)

        progress: list[int] = []
        types: list[EventType] = []
        while not queue.empty():
            event = queue.get_nowait()
            types.append(event.event_type)
            progress.append(event.data["progress"])

        assert types[-1] == EventType.TASK_COMPLETED
        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert all(value <= 95 for value in progress[:-1])


class TestSinks:
    @pytest.mark.asyncio
    async def test_sinks_receive_completed_results(self, store, config):
        sink = RecordingSink()
        provider = ScriptedProvider(["![ok](https://img.example.com/a.png)"])
        coordinator = _coordinator(store, config, provider, sinks=[sink])

        task, _ = await coordinator.submit("standard", {"description": "x"})
        await coordinator.wait(task.id)

        assert len(sink.saved) == 1
        saved_task, result = sink.saved[0]
        assert saved_task.id == task.id
        assert result.images == ["https://img.example.com/a.png"]

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_change_outcome(self, store, config):
        provider = ScriptedProvider(["![ok](https://img.example.com/a.png)"])
        coordinator = _coordinator(store, config, provider, sinks=[RecordingSink(fail=True)])

        task, _ = await coordinator.submit("standard", {"description": "x"})
        final = await coordinator.wait(task.id)

        assert final.status == TaskStatus.COMPLETED
        assert any("archive offline" in line for line in final.logs)

    @pytest.mark.asyncio
    async def test_failed_task_skips_sinks(self, store, config):
        sink = RecordingSink()
        provider = ScriptedProvider([ProviderError("down")])
        coordinator = _coordinator(store, config, provider, sinks=[sink])

        task, _ = await coordinator.submit("standard", {"description": "x"})
        await coordinator.wait(task.id)

        assert sink.saved == []


class TestPlaceholderProvider:
    @pytest.mark.asyncio
    async def test_deterministic_urls(self):
        provider = PlaceholderProvider()
        first = await provider.generate("red fox in snow", count=2)
        second = await provider.generate("red fox in snow", count=2)

        assert first.images == second.images
        assert len(first.images) == 2
        assert first.placeholder
        assert all(is_placeholder_url(url) for url in first.images)
