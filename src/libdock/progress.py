from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Callable, Protocol, TextIO, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadStart:
    url: str
    label: str


@dataclass(frozen=True)
class DownloadUpdate:
    downloaded: int
    total_size: int


@dataclass(frozen=True)
class DownloadEnd:
    success: bool
    message: str = ""


DownloadEvent = Union[DownloadStart, DownloadUpdate, DownloadEnd]


@dataclass(frozen=True)
class TaskProgress:
    name: str | None = None
    message: str | None = None
    completed: bool = False


class DownloadProgressSink(Protocol):
    def on_download(self, event: DownloadEvent) -> None:
        ...


class TaskProgressSink(Protocol):
    def on_task(self, event: TaskProgress) -> None:
        ...


class DownloadProgress:
    """
    Convenience wrapper over a download sink with the three lifecycle calls.

    Sinks are invoked synchronously on the caller's thread; a sink that blocks
    blocks the whole install.
    """

    def __init__(self, sink: DownloadProgressSink) -> None:
        self._sink = sink

    def start(self, url: str, label: str) -> None:
        self._sink.on_download(DownloadStart(url=url, label=label))

    def update(self, downloaded: int, total_size: int) -> None:
        self._sink.on_download(DownloadUpdate(downloaded=downloaded, total_size=total_size))

    def end(self, success: bool, message: str = "") -> None:
        self._sink.on_download(DownloadEnd(success=success, message=message))


class _CallableDownloadSink:
    def __init__(self, fn: Callable[[DownloadEvent], None]) -> None:
        self._fn = fn

    def on_download(self, event: DownloadEvent) -> None:
        self._fn(event)


class _CallableTaskSink:
    def __init__(self, fn: Callable[[TaskProgress], None]) -> None:
        self._fn = fn

    def on_task(self, event: TaskProgress) -> None:
        self._fn(event)


class NullProgress:
    def on_download(self, event: DownloadEvent) -> None:
        pass

    def on_task(self, event: TaskProgress) -> None:
        pass


def as_download_sink(value: DownloadProgressSink | Callable[[DownloadEvent], None] | None) -> DownloadProgressSink:
    if value is None:
        return NullProgress()
    if hasattr(value, "on_download"):
        return value  # type: ignore[return-value]
    return _CallableDownloadSink(value)  # type: ignore[arg-type]


def as_task_sink(value: TaskProgressSink | Callable[[TaskProgress], None] | None) -> TaskProgressSink:
    if value is None:
        return NullProgress()
    if hasattr(value, "on_task"):
        return value  # type: ignore[return-value]
    return _CallableTaskSink(value)  # type: ignore[arg-type]


class LoggingProgress:
    """Forwards both channels to a logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def on_download(self, event: DownloadEvent) -> None:
        if isinstance(event, DownloadStart):
            self._log.info("Downloading %s from %s", event.label, event.url)
        elif isinstance(event, DownloadUpdate):
            self._log.debug("Downloaded %d/%d bytes", event.downloaded, event.total_size)
        elif event.success:
            self._log.info("Download finished %s", event.message)
        else:
            self._log.warning("Download failed: %s", event.message)

    def on_task(self, event: TaskProgress) -> None:
        text = event.name or event.message
        if text:
            self._log.info("%s", text)


class ConsoleProgress:
    """Renders progress events as plain lines for the CLI."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._label = ""
        self._last_pct = -1

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def on_download(self, event: DownloadEvent) -> None:
        if isinstance(event, DownloadStart):
            self._label = event.label
            self._last_pct = -1
            print(f"Downloading {event.label}...", file=self.stream)
            return
        if isinstance(event, DownloadUpdate):
            if event.total_size <= 0:
                return
            pct = int(event.downloaded * 100 / event.total_size)
            # Only print every 25% to keep logs readable.
            if pct // 25 > self._last_pct // 25:
                self._last_pct = pct
                print(f"  {self._label} {pct}%", file=self.stream)
            return
        if event.success:
            print(f"  {event.message or self._label + ' downloaded'}", file=self.stream)
        else:
            print(f"  download failed: {event.message}", file=self.stream)

    def on_task(self, event: TaskProgress) -> None:
        text = event.name or event.message
        if text:
            print(text, file=self.stream)
