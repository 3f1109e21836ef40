"""Global configuration constants for hhgap."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GlobalConfig:
    """Global configuration constants for hhgap.

    Centralizes defaults that affect every neuron in a simulation, such as the
    simulation resolution and the waveform-relaxation settings used for
    gap-junction coupled neurons. Components read these when no explicit
    configuration is given.
    """

    DEFAULT_DT_MS: float = 0.1
    """Default simulation resolution in milliseconds (0.1 ms)."""

    DEFAULT_WFR_TOL: float = 1e-4
    """Maximum membrane-potential change (mV) between relaxation iterates for convergence."""

    DEFAULT_WFR_MAX_ITERATIONS: int = 15
    """Iteration cap applied by the scheduler before the last iterate is accepted."""

    DEFAULT_INTERPOLATION_ORDER: int = 3
    """Order of the piecewise interpolation exchanged over gap junctions (0, 1 or 3)."""

    SPIKE_THRESHOLD_MARGIN_MV: float = 30.0
    """Margin above V_T that the potential must reach for a spike to be detected."""
