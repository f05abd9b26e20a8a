from __future__ import annotations

import logging
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)


class PostCommitTasks:
    """Side effects queued while a write is prepared and run once it is committed.

    Tasks run in the order they were added. A failing task is logged and
    skipped; the remaining tasks still run and nothing is raised to the caller.
    """

    def __init__(self) -> None:
        self._tasks: List[Tuple[str, Callable[..., Any], tuple, dict]] = []

    def add(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._tasks.append((name, func, args, kwargs))

    def __len__(self) -> int:
        return len(self._tasks)

    def run(self) -> List[str]:
        """Run and clear the queue; return the names of the tasks that failed."""
        failed: List[str] = []
        tasks, self._tasks = self._tasks, []
        for name, func, args, kwargs in tasks:
            try:
                func(*args, **kwargs)
            except Exception:
                logger.exception("Post-commit task %s failed", name)
                failed.append(name)
        return failed
