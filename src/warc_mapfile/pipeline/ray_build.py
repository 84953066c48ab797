"""Ray execution mode.

One Ray task per split, with at most one split in flight per cluster CPU so a split's
time budget starts when it is submitted. Ray's own task retries cover worker crashes;
exceptions raised by the split itself and splits that outlive `split_timeout` go
through the same retry policy as local mode (`executor.retry_or_fail`). Results are
gathered with `ray.wait` so checkpoints are written as splits finish.

Ray is an optional dependency (`pip install warc-mapfile[ray]`); it is imported only
when this mode runs.
"""

from __future__ import annotations
import logging
import time
from collections import deque
from typing import Deque, Dict, Optional, Sequence, Tuple

from tqdm import tqdm

from ..errors import ArgumentError
from .context import SplitTask
from .executor import ResultHandler, Runner, next_deadline, retry_or_fail, split_timed_out

log = logging.getLogger("warc_mapfile.ray")


def execute_ray(
    tasks: Sequence[SplitTask],
    runner: Runner,
    *,
    address: Optional[str] = None,
    max_retries: int = 3,
    split_timeout: Optional[float] = None,
    on_result: Optional[ResultHandler] = None,
    progress: bool = True,
) -> None:
    try:
        import ray
    except ImportError as e:
        raise ArgumentError("Execution mode 'ray' needs the ray extra: pip install warc-mapfile[ray]") from e

    ray.init(address=address, ignore_reinit_error=True)
    slots = max(1, int(ray.cluster_resources().get("CPU", 1)))
    log.info(f"[ray] running {len(tasks)} split(s) address={address or 'local'} slots={slots}")

    remote_runner = ray.remote(max_retries=max_retries)(runner)
    handler = on_result or (lambda r: None)
    queue: Deque[SplitTask] = deque(tasks)
    attempts: Dict[str, int] = {t.split_id: 0 for t in tasks}
    running: Dict[object, Tuple[SplitTask, float]] = {}

    with tqdm(total=len(tasks), desc="splits", unit="split", disable=not progress) as bar:
        try:
            while queue or running:
                while queue and len(running) < slots:
                    task = queue.popleft()
                    attempts[task.split_id] += 1
                    running[remote_runner.remote(task)] = (task, time.monotonic())

                timeout = next_deadline([s for _, s in running.values()], split_timeout)
                done, _ = ray.wait(list(running), num_returns=1, timeout=timeout)
                for ref in done:
                    task, _ = running.pop(ref)
                    try:
                        result = ray.get(ref)
                    except ray.exceptions.RayTaskError as e:
                        retry_or_fail(task, attempts[task.split_id], max_retries, e.as_instanceof_cause())
                        queue.append(task)
                        continue
                    except ray.exceptions.RayError as e:
                        retry_or_fail(task, attempts[task.split_id], max_retries, e)
                        queue.append(task)
                        continue
                    result.attempts = attempts[task.split_id]
                    handler(result)
                    bar.update(1)

                if split_timeout is not None:
                    now = time.monotonic()
                    for ref, (task, started) in list(running.items()):
                        if now - started < split_timeout:
                            continue
                        del running[ref]
                        ray.cancel(ref, force=True)
                        retry_or_fail(task, attempts[task.split_id], max_retries, split_timed_out(task, split_timeout))
                        queue.append(task)
        except BaseException:
            for ref in running:
                ray.cancel(ref, force=True)
            raise
