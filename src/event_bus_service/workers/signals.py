from __future__ import annotations

import asyncio
import signal
from typing import Callable


def install_stop_handlers(callback: Callable[[], None]) -> None:
    """Route SIGINT/SIGTERM to ``callback`` instead of killing the loop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, callback)
        except NotImplementedError:
            # Windows event loops
            pass
