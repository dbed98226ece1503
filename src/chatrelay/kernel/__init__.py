from chatrelay.kernel.event_bus import TRANSPORT_TOPIC, EventBus

__all__ = ["EventBus", "TRANSPORT_TOPIC"]
