"""Host-wide advisory lock for serializing iptables invocations.

Old iptables releases (without --wait) take no lock of their own, so
concurrent rule changes can clobber each other. Every cooperating
program locks the same file with flock(LOCK_EX) around the call.

The lock file is shared external state: it is created when missing and
never removed. Closing the descriptor releases the lock.
"""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional

from ipt.core.exceptions import LockError, LockTimeoutError


@contextmanager
def xtables_lock(
    path: Path,
    *,
    timeout: Optional[float] = 10.0,
    initial_delay: float = 0.005,
    max_delay: float = 0.25,
    on_wait: Optional[Callable[[int, float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Generator[int, None, None]:
    """Hold an exclusive flock on path for the duration of the block.

    Non-blocking attempts are retried with exponential backoff, doubling
    from initial_delay up to max_delay, until timeout seconds have passed.
    There is no fairness between waiters.

    Args:
        path: Lock file, created with mode 0600 if missing
        timeout: Seconds to keep retrying; None retries forever
        initial_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        on_wait: Called with (attempt, delay) before each backoff sleep

    Yields:
        The locked file descriptor

    Raises:
        LockError: If the file cannot be opened or flock fails
        LockTimeoutError: If the lock is still held by someone else
            when the timeout elapses
    """
    try:
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise LockError(
            f"Cannot open lock file {path}: {e.strerror or e}",
            lock_path=str(path),
            hint="Run as root or point IPT_LOCK_FILE at a writable path",
        ) from e

    try:
        deadline = None if timeout is None else clock() + timeout
        delay = initial_delay
        attempt = 0

        while True:
            attempt += 1
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                pass
            except OSError as e:
                raise LockError(
                    f"Cannot lock {path}: {e.strerror or e}",
                    lock_path=str(path),
                ) from e

            if deadline is not None and clock() >= deadline:
                raise LockTimeoutError(
                    f"Timed out after {timeout}s waiting for lock {path}",
                    lock_path=str(path),
                    hint="Another process is changing firewall rules; retry later",
                    details=[f"Attempts: {attempt}"],
                )

            pause = delay
            if deadline is not None:
                pause = min(delay, max(deadline - clock(), 0.0))
            if on_wait is not None:
                on_wait(attempt, pause)
            sleep(pause)
            delay = min(delay * 2, max_delay)

        yield fd
    finally:
        os.close(fd)
