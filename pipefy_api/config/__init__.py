"""
Configuración del cliente de Pipefy.
"""
from .settings import DEFAULT_ENDPOINT, PipefyConfig, Settings

__all__ = [
    "DEFAULT_ENDPOINT",
    "PipefyConfig",
    "Settings"
]
