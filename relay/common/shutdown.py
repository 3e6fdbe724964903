"""
Thread-friendly graceful stop.

Long-lived loops (the SQS poller) wait on a `threading.Event` instead of
`time.sleep()` so application shutdown interrupts them promptly.
"""

from __future__ import annotations

import threading

# Process-wide default for loops that are not handed an explicit stop event.
SHUTDOWN_EVENT = threading.Event()


def wait_or_shutdown(timeout_s: float, *, event: threading.Event | None = None) -> bool:
    """
    Interruptible wait.

    Returns:
    - True if shutdown was requested (event set)
    - False if the timeout elapsed without a shutdown request
    """
    ev = event if event is not None else SHUTDOWN_EVENT
    return bool(ev.wait(timeout=max(0.0, float(timeout_s))))
