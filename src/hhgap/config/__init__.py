"""
Configuration for hhgap simulations.

    from hhgap.config import SimulationConfig, GlobalConfig
"""

from hhgap.config.base import BaseConfig, SimulationConfig
from hhgap.global_config import GlobalConfig

__all__ = [
    "BaseConfig",
    "GlobalConfig",
    "SimulationConfig",
]
