"""Telemetry sampling and fan-out."""

from .hub import BroadcastHub, Subscriber
from .sampler import SamplerState, TelemetrySampler
from .sensors import OSSensors

__all__ = ["BroadcastHub", "OSSensors", "SamplerState", "Subscriber", "TelemetrySampler"]
