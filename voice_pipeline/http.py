"""Shared aiohttp session with connection pooling for outbound HTTP calls."""

from __future__ import annotations

import os
from typing import Optional

import aiohttp

from logging_setup import get_logger, Component


class PooledHttpSession:
    """
    Lazily created aiohttp.ClientSession reused across sessions.

    Reuses TCP connections between requests to reduce latency. Pool size
    and connect timeout can be tuned through HTTP_CONNECTION_POOL_SIZE and
    HTTP_CONNECTION_TIMEOUT. There is no total timeout: deadlines, when
    wanted, are applied per stage by the session.
    """

    def __init__(self, name: str, component: Component = Component.SERVER):
        self.name = name
        self.logger = get_logger(component)
        self._http_session: Optional[aiohttp.ClientSession] = None

    def get(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            pool_size = int(os.getenv("HTTP_CONNECTION_POOL_SIZE", "10"))
            connect_timeout = float(os.getenv("HTTP_CONNECTION_TIMEOUT", "5.0"))

            connector = aiohttp.TCPConnector(
                limit=pool_size,
                limit_per_host=pool_size,
                ttl_dns_cache=300,
            )
            self._http_session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=None, connect=connect_timeout),
            )
            self.logger.info(
                "HTTP connection pool created",
                pool=self.name,
                pool_size=pool_size,
                connect_timeout_ms=int(connect_timeout * 1000),
            )
        return self._http_session

    async def aclose(self) -> None:
        """
        Best-effort cleanup of the HTTP session and connector.
        Safe to call multiple times.
        """
        if self._http_session is not None:
            try:
                await self._http_session.close()
                self.logger.info("HTTP connection pool closed", pool=self.name)
            except Exception as e:
                self.logger.warning(
                    "Error closing HTTP session",
                    pool=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._http_session = None
