import asyncio
from typing import Any, Awaitable, Callable, Sequence

from logger import get_logger

log = get_logger(__name__)

WorkItem = Callable[[], Awaitable[Any]]


class RetriesExhausted(RuntimeError):

    def __init__(self, target: str, attempts: int):
        super().__init__(f"Max retries exceeded for {target} ({attempts} attempts)")
        self.target   = target
        self.attempts = attempts



async def run_with_retries(
    operation: WorkItem,
    target: str,
    retries: int,
    backoff: float = 0.0,
) -> Any:
    """
    Await ``operation()`` until it succeeds, at most ``retries + 1`` times.
    The operation must acquire and release its own resources, so every
    attempt starts clean. Raises RetriesExhausted after the last failure.
    """
    if retries < 0:
        raise ValueError("retries must be >= 0")

    last_exc = None
    for attempt in range(1, retries + 2):
        try:
            return await operation()
        except Exception as exc:
            log.error(
                "Error scraping %s (attempt %d/%d): %s",
                target, attempt, retries + 1, exc,
            )
            last_exc = exc

        if attempt <= retries:
            log.warning(
                "Retrying request for: %s, attempts left: %d",
                target, retries + 1 - attempt,
            )
            if backoff > 0:
                wait = backoff * 2 ** (attempt - 1)
                log.info("Backing off %.1fs before retry…", wait)
                await asyncio.sleep(wait)

    raise RetriesExhausted(target, retries + 1) from last_exc



def _first_error(tasks) -> BaseException | None:
    for task in tasks:
        exc = task.exception()
        if exc is not None:
            return exc
    return None


async def run_concurrently(tasks: Sequence[WorkItem], max_concurrency: int) -> list:
    """
    Run every work item with at most ``max_concurrency`` in flight and
    return their results in submission order.

    The first failure stops admission of the items still queued. Items
    already running are left to finish (nothing is cancelled) and then
    the failure is re-raised.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")

    started: list[asyncio.Future] = []
    in_flight: set[asyncio.Future] = set()
    first_error = None

    for item in tasks:
        future = asyncio.ensure_future(item())
        started.append(future)
        in_flight.add(future)

        if len(in_flight) >= max_concurrency:
            done, in_flight = await asyncio.wait(
                in_flight, return_when=asyncio.FIRST_COMPLETED,
            )
            first_error = _first_error(done)
            if first_error is not None:
                break

    if in_flight:
        await asyncio.wait(in_flight)

    errors = [f.exception() for f in started if f.exception() is not None]
    if first_error is None and errors:
        first_error = errors[0]

    if first_error is not None:
        skipped = len(tasks) - len(started)
        for exc in errors:
            if exc is not first_error:
                log.error("Another work item also failed: %s", exc)
        log.error(
            "Aborting batch: %d of %d items failed, %d never started",
            len(errors), len(tasks), skipped,
        )
        raise first_error

    return [f.result() for f in started]
