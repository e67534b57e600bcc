"""Service wiring: probe → controllers → hub → sampler → dispatcher.

One :class:`DeckService` is built at startup and handed to the transport
layer; nothing in the package keeps module-level controller instances.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from .actions import AppLauncher, ScriptExecutor, ScriptResolver
from .capabilities import CapabilitySet, probe_capabilities
from .config import DeckConfig
from .controllers import Controllers, create_controllers
from .dispatcher import CommandDispatcher
from .models import ActionResponse, MediaState, TelemetrySnapshot
from .telemetry import BroadcastHub, OSSensors, Subscriber, TelemetrySampler

logger = logging.getLogger(__name__)


class DeckService:
    def __init__(
        self,
        config: DeckConfig,
        caps: CapabilitySet,
        controllers: Controllers,
        sensors: OSSensors | None = None,
        script_resolver: ScriptResolver | None = None,
    ) -> None:
        self.config = config
        self.caps = caps
        self.controllers = controllers
        self.hub = BroadcastHub(queue_size=config.subscriber_queue_size)
        self.sampler = TelemetrySampler(
            controllers, self.hub,
            sensors=sensors,
            interval=config.tick_interval,
            call_timeout=config.call_timeout,
        )
        self.dispatcher = CommandDispatcher(
            controllers,
            launcher=AppLauncher(system=caps.platform),
            scripts=ScriptExecutor(
                config.resolved_script_dirs(), timeout=config.script_timeout, system=caps.platform,
            ),
            script_resolver=script_resolver,
            volume_step=config.volume_step,
            brightness_step=config.brightness_step,
        )
        self._running = False
        self._wire_media(controllers)

    @classmethod
    def create(cls, config: DeckConfig | None = None, **kwargs: Any) -> DeckService:
        config = config or DeckConfig()
        caps = probe_capabilities(config)
        return cls(config, caps, create_controllers(caps, config), **kwargs)

    def _wire_media(self, controllers: Controllers) -> None:
        controllers.media.on_change(self._on_media_change)

    def _on_media_change(self, state: MediaState) -> None:
        self.sampler.update_media(state)

    # ── Lifecycle ──

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.hub.reopen()
        await self.controllers.media.start()
        await self.sampler.start()
        logger.info("ctrldeck service started on %s", self.caps.platform)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        await self.sampler.stop()
        await self.controllers.media.stop()
        self.hub.close()
        self.controllers.close()
        logger.info("ctrldeck service stopped")

    async def refresh_capabilities(self) -> CapabilitySet:
        """Re-probe the host and swap in a fresh controller set."""
        loop = asyncio.get_running_loop()
        caps = await loop.run_in_executor(None, probe_capabilities, self.config)
        controllers = await loop.run_in_executor(None, create_controllers, caps, self.config)
        old = self.controllers
        if self._running:
            await old.media.stop()
        old.close()

        self.caps = caps
        self.controllers = controllers
        self.sampler.controllers = controllers
        self.dispatcher.controllers = controllers
        self._wire_media(controllers)
        if self._running:
            await controllers.media.start()
        logger.info("Capabilities refreshed")
        return caps

    # ── Surface for the transport layer ──

    @property
    def volume(self):
        return self.controllers.volume

    @property
    def mic(self):
        return self.controllers.mic

    @property
    def brightness(self):
        return self.controllers.brightness

    @property
    def media(self):
        return self.controllers.media

    def subscribe(self) -> Subscriber:
        return self.hub.subscribe()

    def unsubscribe(self, sub: Subscriber) -> None:
        self.hub.unsubscribe(sub)

    def current(self) -> TelemetrySnapshot:
        return self.sampler.current()

    async def dispatch_action(self, action_type: str, params: Mapping[str, Any] | None = None) -> ActionResponse:
        return await self.dispatcher.dispatch(action_type, params)
