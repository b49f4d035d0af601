from .probe import is_port_free, is_port_listening, wait_for_port_listen
from .registry import GOSSIP_RANGE_WIDTH, PortRegistry, PortSet, default_registry

__all__ = [
    "GOSSIP_RANGE_WIDTH",
    "PortRegistry",
    "PortSet",
    "default_registry",
    "is_port_free",
    "is_port_listening",
    "wait_for_port_listen",
]
