"""
Run coroutines from synchronous Celery workers.

Each call gets a fresh event loop that is closed afterwards, so adapters
must not keep loop-bound resources between calls (they cache their httpx
client per loop).
"""

import asyncio
from typing import Any, Awaitable


def run_async(coro: Awaitable) -> Any:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
        asyncio.set_event_loop(None)
