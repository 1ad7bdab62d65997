from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

DEFAULT_TIMEOUT = 15.0


@asynccontextmanager
async def managed_client(client: Optional[httpx.AsyncClient] = None,
                         timeout: float = DEFAULT_TIMEOUT) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client as-is, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
        yield owned
