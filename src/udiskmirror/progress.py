from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Protocol

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TaskProgressColumn, TextColumn

from udiskmirror.models import DestinationTarget, ProgressState


class ProgressSink(Protocol):
    def advance(self, count: int = 1) -> None: ...

    def finish(self) -> None: ...


SinkFactory = Callable[[DestinationTarget], ProgressSink]


class NullProgressSink:
    """Counts progress without rendering anything."""

    def __init__(self, total: int) -> None:
        self.state = ProgressState(total=total)
        self.finished = False

    def advance(self, count: int = 1) -> None:
        self.state.advance(count)

    def finish(self) -> None:
        self.finished = True


class RichProgressSink:
    def __init__(self, progress: Progress, task_id: TaskID, total: int) -> None:
        self._progress = progress
        self._task_id = task_id
        self.state = ProgressState(total=total)

    def advance(self, count: int = 1) -> None:
        self.state.advance(count)
        self._progress.advance(self._task_id, count)

    def finish(self) -> None:
        self._progress.stop_task(self._task_id)


def null_sink_factory(target: DestinationTarget) -> ProgressSink:
    return NullProgressSink(target.total)


def _build_progress(console: Console | None) -> Progress:
    return Progress(
        TextColumn("[green]{task.description}"),
        MofNCompleteColumn(),
        BarColumn(None),
        TaskProgressColumn(),
        console=console,
        expand=True,
    )


@contextmanager
def rich_sink_factory(console: Console | None = None) -> Iterator[SinkFactory]:
    """Open one live display and hand out one bar per destination target.

    ``Progress`` guards its task table with a lock, so the returned factory
    and the sinks it builds may be used from worker threads.
    """
    with _build_progress(console) as progress:

        def factory(target: DestinationTarget) -> ProgressSink:
            task_id = progress.add_task(target.label, total=target.total)
            return RichProgressSink(progress, task_id, target.total)

        yield factory
