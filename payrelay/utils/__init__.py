"""
Utility modules for the payment relay
"""
from .config_loader import RelayConfig, load_relay_config

__all__ = [
    "RelayConfig",
    "load_relay_config",
]
