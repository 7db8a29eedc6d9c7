from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.db import AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session for the duration of one request.

    Yields:
        async_session: An async session object.
    """
    async with AsyncSessionLocal() as async_session:
        yield async_session
