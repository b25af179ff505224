"""
QuickMock File Watcher

Polls a file's modification time and calls back once per change.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger("quickmock.watcher")

ChangeCallback = Callable[[], Union[None, Awaitable[None]]]


def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except OSError:
        # Editors may delete-then-recreate on save
        return None


async def _poll(path: Path, callback: ChangeCallback, interval: float, debounce: float):
    last_seen = _mtime(path)

    while True:
        await asyncio.sleep(interval)
        current = _mtime(path)
        if current is None or current == last_seen:
            continue

        # Let the writer finish before reading the file
        await asyncio.sleep(debounce)
        last_seen = _mtime(path) or current

        try:
            result = callback()
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception(f"Change callback failed for {path}")


def watch_file(
    file_path: Union[str, Path],
    callback: ChangeCallback,
    interval: float = 0.5,
    debounce: float = 0.25
) -> asyncio.Task:
    """
    Watch a file for changes from the running event loop.

    Args:
        file_path: File to watch
        callback: Called (or awaited, if it returns a coroutine) after each change
        interval: Polling interval in seconds
        debounce: Extra wait after a change is seen, so half-written files are skipped

    Returns:
        The polling task; cancel it to stop watching
    """
    return asyncio.ensure_future(_poll(Path(file_path), callback, interval, debounce))
