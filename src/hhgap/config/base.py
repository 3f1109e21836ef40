"""
Base Configuration Classes.

Provides the tensor placement fields shared by every component and the
simulation-wide configuration consumed by the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import torch

from hhgap.components.gap_junctions import GapJunctionConfig
from hhgap.errors import ConfigurationError, validate_positive
from hhgap.global_config import GlobalConfig
from hhgap.integration.rk45 import IntegratorConfig


@dataclass
class BaseConfig:
    """Base configuration with common fields for all components.

    - device: Hardware device (cpu/cuda)
    - dtype: Tensor data type
    """

    device: str = "cpu"
    """Device to run on: 'cpu', 'cuda', 'cuda:0', etc."""

    dtype: str = "float64"
    """Data type for state tensors. The adaptive integrator needs 'float64'."""

    def get_torch_device(self) -> torch.device:
        """Get PyTorch device object."""
        return torch.device(self.device)

    def get_torch_dtype(self) -> torch.dtype:
        """Get PyTorch dtype object."""
        dtype_map = {
            "float32": torch.float32,
            "float64": torch.float64,
        }
        if self.dtype not in dtype_map:
            raise ConfigurationError(
                f"Unknown dtype '{self.dtype}'. "
                f"Choose from: {list(dtype_map.keys())}"
            )
        return dtype_map[self.dtype]


@dataclass
class SimulationConfig(BaseConfig):
    """Configuration of a simulation run driven by the scheduler.

    Attributes:
        dt_ms: Simulation resolution in ms. Every neuron is calibrated to it.
        slice_steps: Number of steps in one delivery slice. Waveform relaxation
            iterates over a whole slice before coupled neurons commit.
        wfr_max_iterations: Iteration cap per slice; after it the last
            iterate is accepted.
        n_threads: Number of worker threads updating disjoint neuron subsets.
        input_horizon_steps: How far ahead (in steps) input events may be
            scheduled; sizes each neuron's input ring buffer.
        gap_junctions: Interpolation order and convergence tolerance.
        integrator: Adaptive RK45 tolerances.
    """

    dt_ms: float = GlobalConfig.DEFAULT_DT_MS
    slice_steps: int = 10
    wfr_max_iterations: int = GlobalConfig.DEFAULT_WFR_MAX_ITERATIONS
    n_threads: int = 1
    input_horizon_steps: int = 1024
    gap_junctions: GapJunctionConfig = field(default_factory=GapJunctionConfig)
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)

    def __post_init__(self) -> None:
        validate_positive(self.dt_ms, "dt_ms")
        for name in ("slice_steps", "wfr_max_iterations", "n_threads", "input_horizon_steps"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value}")
        if self.input_horizon_steps < 2 * self.slice_steps:
            raise ConfigurationError(
                f"input_horizon_steps ({self.input_horizon_steps}) must cover at least "
                f"two slices ({2 * self.slice_steps} steps)"
            )

    @property
    def slice_ms(self) -> float:
        """Duration of one delivery slice in ms."""
        return self.slice_steps * self.dt_ms
