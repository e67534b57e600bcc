"""ctrldeck: remote control and live telemetry for a single machine.

Exposes the host's volume, microphone, display brightness and media playback
to remote clients and streams hardware telemetry over a persistent channel.

Quickstart::

    from ctrldeck.config import DeckConfig
    from ctrldeck.service import DeckService

    service = DeckService.create(DeckConfig())
    await service.start()
    result = await service.dispatch_action("volume_up", {"step": "5"})
    print(result.message)            # "Volume: 55%"
"""

__version__ = "1.0.0"
