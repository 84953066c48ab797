"""Local split execution with retries.

- workers <= 1 and no split timeout: splits run one after another in this process
- otherwise: a ProcessPoolExecutor with at most `workers` splits in flight

A MalformedRecordError is a data error: retrying cannot fix it, so it propagates
at once. Any other exception is retried up to `max_retries` times before the split
fails the job with WorkerFailure. `on_result` is called in the driver for every
finished split, in completion order.

A worker process that dies breaks the whole pool. The pool is then torn down and
rebuilt, and every split it was running goes back on the queue. A split running
longer than `split_timeout` seconds counts as a failed attempt; its worker is killed
the same way.
"""

from __future__ import annotations
import logging
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from concurrent.futures.process import BrokenProcessPool
from typing import Callable, Deque, Dict, Optional, Sequence, Tuple

from tqdm import tqdm

from ..errors import MalformedRecordError, WorkerFailure
from .context import SplitResult, SplitTask

log = logging.getLogger("warc_mapfile.executor")

Runner = Callable[[SplitTask], SplitResult]
ResultHandler = Callable[[SplitResult], None]


def _give_up(task: SplitTask, attempts: int, err: BaseException) -> WorkerFailure:
    return WorkerFailure(
        f"Split {task.split_id} ({task.split.path}) failed after {attempts} attempt(s): {err!r}",
        split_id=task.split_id,
        attempts=attempts,
    )


def retry_or_fail(task: SplitTask, attempts: int, max_retries: int, err: BaseException) -> None:
    """Raise unless the split may run again."""
    if isinstance(err, MalformedRecordError):
        raise err
    if attempts > max_retries:
        raise _give_up(task, attempts, err) from err
    log.warning(f"Split {task.split_id} attempt {attempts} failed: {err!r}; retrying ({attempts}/{max_retries})")


def split_timed_out(task: SplitTask, split_timeout: float) -> TimeoutError:
    return TimeoutError(f"Split {task.split_id} exceeded split_timeout of {split_timeout}s")


def next_deadline(started: Sequence[float], split_timeout: Optional[float]) -> Optional[float]:
    """Seconds until the oldest running split runs out of time, or None without a timeout."""
    if split_timeout is None or not started:
        return None
    return max(0.0, min(started) + split_timeout - time.monotonic())


def _run_sequential(tasks, runner, max_retries, on_result, bar) -> None:
    for task in tasks:
        attempts = 0
        while True:
            attempts += 1
            try:
                result = runner(task)
            except Exception as e:
                retry_or_fail(task, attempts, max_retries, e)
                continue
            result.attempts = attempts
            on_result(result)
            bar.update(1)
            break


def _kill_pool(pool: ProcessPoolExecutor) -> None:
    procs = list((pool._processes or {}).values())
    pool.shutdown(wait=False, cancel_futures=True)
    for p in procs:
        if p.is_alive():
            p.terminate()
    for p in procs:
        p.join(timeout=5)


def _run_pool(tasks, runner, workers, max_retries, split_timeout, on_result, bar) -> None:
    queue: Deque[SplitTask] = deque(tasks)
    attempts: Dict[str, int] = {t.split_id: 0 for t in tasks}
    generation = 0
    while queue:
        generation += 1
        if generation > 1:
            log.warning(f"Restarting worker pool ({len(queue)} split(s) queued)")
        pool = ProcessPoolExecutor(max_workers=workers)
        running: Dict[Future, Tuple[SplitTask, float]] = {}
        broken: Optional[BrokenProcessPool] = None
        timed_out = False
        try:
            while broken is None and not timed_out and (queue or running):
                while queue and len(running) < workers:
                    task = queue.popleft()
                    try:
                        fut = pool.submit(runner, task)
                    except BrokenProcessPool as e:
                        queue.appendleft(task)
                        broken = e
                        break
                    attempts[task.split_id] += 1
                    running[fut] = (task, time.monotonic())
                if broken is not None:
                    break

                timeout = next_deadline([s for _, s in running.values()], split_timeout)
                done, _ = wait(running, timeout=timeout, return_when=FIRST_COMPLETED)
                for fut in done:
                    task, _ = running.pop(fut)
                    try:
                        result = fut.result()
                    except BrokenProcessPool as e:
                        broken = e
                        retry_or_fail(task, attempts[task.split_id], max_retries, e)
                        queue.append(task)
                        continue
                    except Exception as e:
                        retry_or_fail(task, attempts[task.split_id], max_retries, e)
                        queue.append(task)
                        continue
                    result.attempts = attempts[task.split_id]
                    on_result(result)
                    bar.update(1)

                if split_timeout is not None and broken is None:
                    now = time.monotonic()
                    for fut, (task, started) in list(running.items()):
                        if now - started < split_timeout:
                            continue
                        del running[fut]
                        timed_out = True
                        retry_or_fail(task, attempts[task.split_id], max_retries, split_timed_out(task, split_timeout))
                        queue.append(task)
        finally:
            if broken is None and not timed_out and not running:
                pool.shutdown(wait=True)
            else:
                _kill_pool(pool)

        # A dead worker takes the whole pool down with every split it was running.
        # Splits stopped only because another one overran its budget run again uncharged.
        leftover = [task for task, _ in running.values()]
        if broken is not None:
            for task in leftover:
                retry_or_fail(task, attempts[task.split_id], max_retries, broken)
                queue.append(task)
        else:
            for task in reversed(leftover):
                attempts[task.split_id] -= 1
                queue.appendleft(task)


def execute_local(
    tasks: Sequence[SplitTask],
    runner: Runner,
    *,
    workers: int = 1,
    max_retries: int = 3,
    split_timeout: Optional[float] = None,
    on_result: Optional[ResultHandler] = None,
    progress: bool = True,
) -> None:
    handler = on_result or (lambda r: None)
    with tqdm(total=len(tasks), desc="splits", unit="split", disable=not progress) as bar:
        if split_timeout is None and (workers <= 1 or len(tasks) <= 1):
            _run_sequential(tasks, runner, max_retries, handler, bar)
        else:
            _run_pool(tasks, runner, max(1, min(workers, len(tasks))), max_retries, split_timeout, handler, bar)
