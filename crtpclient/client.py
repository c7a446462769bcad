"""Application-facing connection to one vehicle.

:class:`Crazyflie` owns the dispatcher of a link and every subsystem bound
to it. Connecting runs the platform handshake and fetches the log and param
TOCs; any failure on the way closes the link and propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config.model import ClientConfig
from .services.commander import Commander
from .services.console import Console
from .services.dispatcher import Dispatcher, DispatcherStats
from .services.link import LinkService
from .services.localization import Localization
from .services.log import Log
from .services.param import Param
from .services.platform import Platform
from .services.supervisor import Supervisor
from .services.toc import FileTocCache, TocCache, default_toc_cache
from .transport.base import Link, LinkFactory

logger = logging.getLogger("crtpclient.client")


class Crazyflie:
    """A live connection. Build it with :meth:`connect` or :meth:`connect_link`."""

    def __init__(
        self,
        link: Link,
        *,
        config: ClientConfig | None = None,
        toc_cache: TocCache | None = None,
        address: str | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.address = address
        if toc_cache is None:
            toc_cache = _default_cache(self.config)
        self._dispatcher = Dispatcher(
            link,
            send_queue_size=self.config.send_queue_size,
            port_queue_limits=self.config.port_queue_limits,
        )
        self._platform = Platform(self._dispatcher, self.config)
        self._log = Log(self._dispatcher, self.config, toc_cache)
        self._param = Param(self._dispatcher, self.config, toc_cache)
        self._console = Console(self._dispatcher, self.config)
        self._commander = Commander(self._dispatcher)
        self._localization = Localization(self._dispatcher)
        self._supervisor = Supervisor(self._dispatcher, self.config)
        self._link_service = LinkService(self._dispatcher, self.config)

    @classmethod
    async def connect(
        cls,
        address: str,
        link_factory: LinkFactory,
        *,
        config: ClientConfig | None = None,
        toc_cache: TocCache | None = None,
    ) -> Crazyflie:
        """Open a link to *address* and connect over it."""
        link = await link_factory(address)
        return await cls.connect_link(link, config=config, toc_cache=toc_cache, address=address)

    @classmethod
    async def connect_link(
        cls,
        link: Link,
        *,
        config: ClientConfig | None = None,
        toc_cache: TocCache | None = None,
        address: str | None = None,
    ) -> Crazyflie:
        """Connect over an already open link."""
        client = cls(link, config=config, toc_cache=toc_cache, address=address)
        await client._establish()
        return client

    async def _establish(self) -> None:
        self._dispatcher.start()
        try:
            self._console.start()
            await self._platform.handshake()
            try:
                async with asyncio.TaskGroup() as group:
                    group.create_task(self._log.initialize(), name="crtpclient-log-init")
                    group.create_task(self._param.initialize(), name="crtpclient-param-init")
            except BaseExceptionGroup as errors:
                raise errors.exceptions[0] from None
            self._dispatcher.mark_connected()
        except BaseException as exc:
            logger.warning("Connection setup failed: %s", exc)
            await self._dispatcher.close()
            raise

    # --- Subsystems ---

    @property
    def log(self) -> Log:
        return self._log

    @property
    def param(self) -> Param:
        return self._param

    @property
    def commander(self) -> Commander:
        return self._commander

    @property
    def console(self) -> Console:
        return self._console

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def localization(self) -> Localization:
        return self._localization

    @property
    def supervisor(self) -> Supervisor:
        return self._supervisor

    @property
    def link_service(self) -> LinkService:
        return self._link_service

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def stats(self) -> DispatcherStats:
        return self._dispatcher.stats

    @property
    def is_connected(self) -> bool:
        return self._dispatcher.is_connected

    # --- Lifecycle ---

    async def disconnect(self) -> str:
        """Close the connection and return the disconnect reason."""
        return await self._dispatcher.close()

    async def wait_disconnect(self) -> str:
        """Wait until the connection ends, for whatever reason."""
        return await self._dispatcher.wait_closed()

    async def __aenter__(self) -> Crazyflie:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()


def _default_cache(config: ClientConfig) -> TocCache:
    if config.toc_cache_dir is not None:
        return FileTocCache(config.toc_cache_dir)
    return default_toc_cache()


async def connect(
    address: str,
    link_factory: LinkFactory,
    *,
    config: ClientConfig | None = None,
    toc_cache: TocCache | None = None,
) -> Crazyflie:
    """Shorthand for :meth:`Crazyflie.connect`."""
    return await Crazyflie.connect(address, link_factory, config=config, toc_cache=toc_cache)


__all__ = ["Crazyflie", "connect"]
