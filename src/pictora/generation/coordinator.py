"""GenerationCoordinator - drives each task from submission to a terminal state.

One background run per task:
  1. Mark the task processing and start the progress ticker.
  2. Resolve a provider once, then call it up to ``max_retries + 1`` times,
     sequentially, with a fixed delay between attempts.
  3. Complete with the first reply that yields images, or fail with the
     last error once the attempt budget is spent.
  4. Hand completed results to the configured sinks.

Nothing raised inside a run escapes it; failures become task state.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
from collections.abc import Callable, Iterable
from typing import Any

from .archive import ResultSink
from .config import GenerationConfig
from .events import Event, EventType, TaskEventBus
from .models import GenerationParameters, GenerationResult, ModuleType, Task, TaskStatus
from .params import ParamBuilder
from .progress import START_PROGRESS, ProgressTicker
from .providers import PlaceholderProvider, ProviderAdapter, ProviderError, ProviderReply
from .providers import select_provider
from .store import TaskStore

logger = logging.getLogger(__name__)

NO_IMAGES_ERROR = "No images produced"
CANCELLED_ERROR = "Task cancelled"

ProviderFactory = Callable[[], ProviderAdapter]


class GenerationCoordinator:
    """Runs generation tasks in the background.

    Args:
        store: Task store shared with the HTTP handlers.
        config: Retry, timeout and progress settings.
        provider_factory: Returns the adapter for a new task. Defaults to
            the configured selection policy.
        param_builder: Builds parameters from module input.
        sinks: Receive every completed result.
        events: Bus that receives task events, if push updates are wanted.
        rng: Random source for the progress curve.
    """

    def __init__(
        self,
        store: TaskStore,
        config: GenerationConfig | None = None,
        *,
        provider_factory: ProviderFactory | None = None,
        param_builder: ParamBuilder | None = None,
        sinks: Iterable[ResultSink] = (),
        events: TaskEventBus | None = None,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.config = config or GenerationConfig()
        self.params = param_builder or ParamBuilder()
        self.sinks: list[ResultSink] = list(sinks)
        self.events = events
        self._provider_factory = provider_factory or (lambda: select_provider(self.config))
        self._rng = rng or random.Random()
        self._started: set[str] = set()
        self._runs: dict[str, asyncio.Task[None]] = {}

    @property
    def active_count(self) -> int:
        return len(self._runs)

    # --- Entry points ---

    async def submit(
        self, module_id: Any, payload: Any
    ) -> tuple[Task, GenerationParameters]:
        """Create a pending task and start generating in the background.

        Returns immediately with the pending task and its parameters.
        """
        module = ModuleType.resolve(module_id)
        params = self.params.build(module, payload)

        task = Task(id=secrets.token_hex(8), module=module)
        task.add_log(f"Task created for module {module.value}")
        task = await self.store.create(task)
        logger.info("Created task %s (module=%s)", task.id, module.value)
        await self._publish(task, EventType.TASK_CREATED)

        self.start(task.id, params)
        return task, params

    def start(self, task_id: str, params: GenerationParameters) -> bool:
        """Start the background run for ``task_id``.

        At most one run is ever started per task id; later calls return False.
        """
        if task_id in self._started:
            logger.debug("Task %s already started", task_id)
            return False
        self._started.add(task_id)

        run = asyncio.create_task(self.run(task_id, params), name=f"generate-{task_id}")
        self._runs[task_id] = run
        run.add_done_callback(lambda _: self._runs.pop(task_id, None))
        return True

    async def wait(self, task_id: str) -> Task | None:
        """Wait for the task's run to finish and return the final task."""
        run = self._runs.get(task_id)
        if run is not None:
            await asyncio.gather(run, return_exceptions=True)
        return await self.store.get(task_id)

    async def shutdown(self) -> None:
        """Cancel every in-flight run; each records a cancelled failure."""
        runs = list(self._runs.items())
        for task_id, run in runs:
            logger.info("Cancelling generation for task %s", task_id)
            run.cancel()
        if runs:
            await asyncio.gather(*(run for _, run in runs), return_exceptions=True)
        self._runs.clear()

    # --- Run ---

    async def run(self, task_id: str, params: GenerationParameters) -> None:
        """Drive one task to completion or failure."""
        ticker = ProgressTicker(
            self.store,
            task_id,
            interval=self.config.progress_interval,
            ceiling=self.config.progress_ceiling,
            rng=self._rng,
            on_tick=self._on_tick,
        )
        provider: ProviderAdapter | None = None

        try:

            def begin(task: Task) -> bool:
                if task.is_terminal:
                    return False
                task.status = TaskStatus.PROCESSING
                task.progress = max(task.progress, START_PROGRESS)
                task.add_log("Generation started")
                return True

            task = await self.store.modify(task_id, begin)
            if task is None:
                logger.warning("Task %s is unknown or already finished, not running", task_id)
                return
            await self._publish(task, EventType.TASK_PROGRESS)
            ticker.start()

            provider = self._provider_factory()
            await self.store.append_log(task_id, f"Using provider {provider.name}")

            reply, error = await self._generate_with_retries(task_id, provider, params)

            if reply is None and self.config.placeholder_fallback and not provider.is_placeholder:
                await self.store.append_log(task_id, "Falling back to placeholder images")
                reply = await PlaceholderProvider().generate(
                    params.prompt, count=params.image_count
                )

            await ticker.stop()
            if reply is None:
                await self._finish_failed(task_id, error)
                return

            result = GenerationResult(
                images=reply.images[: params.image_count],
                used_prompt=params.prompt,
                parameters=params,
                provider=reply.provider or provider.name,
            )
            task = await self.store.complete(task_id, result)
            if task is None:
                return
            logger.info("Task %s completed with %d image(s)", task_id, len(result.images))
            await self._publish(task, EventType.TASK_COMPLETED)
            await self._run_sinks(task, result)

        except asyncio.CancelledError:
            logger.info("Task %s was cancelled", task_id)
            await ticker.stop()
            await self._finish_failed(task_id, CANCELLED_ERROR)
            raise
        except Exception as e:
            logger.exception("Unexpected error while generating task %s", task_id)
            await ticker.stop()
            await self._finish_failed(task_id, f"Unexpected error: {e}")
        finally:
            await ticker.stop()
            if provider is not None:
                try:
                    await provider.aclose()
                except Exception:
                    logger.warning("Failed to close provider %s", provider.name)

    async def _generate_with_retries(
        self,
        task_id: str,
        provider: ProviderAdapter,
        params: GenerationParameters,
    ) -> tuple[ProviderReply | None, str]:
        """Call ``provider`` until it yields images or the budget runs out.

        Returns the successful reply (or None) and the last error message.
        """
        attempts = self.config.max_attempts
        timeout = self.config.provider_timeout
        last_error = NO_IMAGES_ERROR

        for attempt in range(1, attempts + 1):
            await self.store.append_log(
                task_id, f"Attempt {attempt}/{attempts} with {provider.name}"
            )
            try:
                reply = await asyncio.wait_for(
                    provider.generate(
                        params.prompt,
                        negative_prompt=params.negative_prompt,
                        reference_images=params.all_reference_images,
                        count=params.image_count,
                    ),
                    timeout=timeout,
                )
                images = [url for url in reply.images if isinstance(url, str) and url]
                if images:
                    reply.images = images
                    await self.store.append_log(
                        task_id, f"Attempt {attempt} returned {len(images)} image(s)"
                    )
                    return reply, ""
                last_error = NO_IMAGES_ERROR
            except ProviderError as e:
                last_error = e.message
            except TimeoutError:
                last_error = f"Provider timed out after {timeout:g}s"
            except Exception as e:
                logger.exception("Provider %s raised unexpectedly", provider.name)
                last_error = str(e) or type(e).__name__

            logger.warning(
                "Task %s attempt %d/%d failed: %s", task_id, attempt, attempts, last_error
            )
            await self.store.append_log(task_id, f"Attempt {attempt} failed: {last_error}")

            if attempt < attempts:
                await self.store.append_log(
                    task_id, f"Retrying in {self.config.retry_delay:g}s"
                )
                await asyncio.sleep(self.config.retry_delay)

        return None, last_error

    # --- Helpers ---

    async def _finish_failed(self, task_id: str, error: str) -> None:
        task = await self.store.fail(task_id, error)
        if task is None:
            return
        logger.info("Task %s failed: %s", task_id, error)
        await self._publish(task, EventType.TASK_FAILED)

    async def _run_sinks(self, task: Task, result: GenerationResult) -> None:
        for sink in self.sinks:
            name = type(sink).__name__
            try:
                saved = await sink.save(task, result)
                await self.store.append_log(task.id, f"{name} stored {saved} image(s)")
            except Exception as e:
                logger.exception("Result sink %s failed for task %s", name, task.id)
                await self.store.append_log(task.id, f"{name} failed: {e}")

    async def _on_tick(self, task: Task) -> None:
        await self._publish(task, EventType.TASK_PROGRESS)

    async def _publish(self, task: Task, event_type: EventType) -> None:
        if self.events is None:
            return
        await self.events.publish_to_task(
            task.id, Event(event_type=event_type, data=task.status_dict())
        )
