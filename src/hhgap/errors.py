"""
Custom exception classes and validation utilities for hhgap.

This module provides:
1. Hierarchical exception classes for the error categories of the engine
2. Validation utilities for parameter constraints
3. Consistent error message formatting

Exception Hierarchy:
====================
HHGapError (base)
├── ConfigurationError - Invalid parameters, state values or calibration
├── RoutingError - Event delivered to an unknown channel, port or step
├── NumericalFailureError - Adaptive integrator could not satisfy its tolerance
└── SimulationHaltedError - Scheduler refuses to continue after a numerical failure

Configuration and routing errors are recoverable: the object that raised them
is left exactly as it was. Numerical failures abort the current step and must
be handled by the scheduler, which halts: a network whose neurons stopped
at different steps cannot be resumed.
"""

from __future__ import annotations

import math


# =============================================================================
# Exception Hierarchy
# =============================================================================


class HHGapError(Exception):
    """Base exception for all hhgap-specific errors.

    All custom exceptions in hhgap inherit from this class, enabling
    code to catch hhgap errors specifically:

        try:
            simulator.run(n_slices=10)
        except HHGapError as e:
            logger.error(f"Simulation error: {e}")
    """


class ConfigurationError(HHGapError):
    """Invalid configuration parameters.

    Raised when parameter or state values are out of valid range, or when
    derived constants cannot be calibrated for the current resolution.

    Example:
        raise ConfigurationError("tau_rise_ex must be positive, got -0.5")
    """


class RoutingError(HHGapError):
    """Event delivered to an input the neuron does not have.

    Raised for unknown synapse channels, non-zero receptor ports, and events
    stamped for steps that have already elapsed or lie beyond the input
    buffer horizon.

    Args:
        component_name: Name of the receiving neuron
        message: Description of the error
    """

    def __init__(self, component_name: str, message: str):
        super().__init__(f"[{component_name}] {message}")
        self.component_name = component_name


class NumericalFailureError(HHGapError):
    """Adaptive ODE integration failed.

    Raised when no sub-step above the configured minimum size satisfies the
    local error tolerance. The step is aborted; the committed state of the
    neuron is left at its last committed value.

    Args:
        component_name: Name of the neuron whose integration failed
        message: Description of the failure
        t_ms: Position within the step at which integration stalled
        h_ms: Last sub-step size attempted
    """

    def __init__(self, component_name: str, message: str, t_ms: float = 0.0, h_ms: float = 0.0):
        super().__init__(f"[{component_name}] {message} (t={t_ms:.6g} ms, h={h_ms:.3g} ms)")
        self.component_name = component_name
        self.t_ms = t_ms
        self.h_ms = h_ms


class SimulationHaltedError(HHGapError):
    """The scheduler was asked to continue after a numerical failure.

    Neurons that finished the failed slice have committed it while the
    failing one has not, so the network is no longer at a common step.

    Attributes:
        failed_step: First step of the slice that failed
    """

    def __init__(self, failed_step: int):
        super().__init__(
            f"Simulation halted after a numerical failure in the slice starting at step {failed_step}; "
            "build a new scheduler to continue"
        )
        self.failed_step = failed_step


# =============================================================================
# Validation Utilities
# =============================================================================


def validate_positive(
    value: float,
    name: str,
    allow_zero: bool = False,
) -> None:
    """Validate that a value is finite and positive.

    Useful for time constants, conductances and capacitances.

    Args:
        value: Value to check
        name: Parameter name for error messages
        allow_zero: Whether zero is acceptable (default: False)

    Raises:
        ConfigurationError: If value not positive or not finite

    Example:
        >>> validate_positive(tau_rise_ex, "tau_rise_ex")
        >>> validate_positive(t_ref, "t_ref", allow_zero=True)
    """
    validate_finite(value, name)
    if allow_zero:
        if value < 0:
            raise ConfigurationError(f"{name} must be non-negative, got {value}")
    else:
        if value <= 0:
            raise ConfigurationError(f"{name} must be positive, got {value}")


def validate_finite(value: float, name: str) -> None:
    """Validate that a value is a finite real number.

    Raises:
        ConfigurationError: If value is NaN, Inf or not numeric
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be numeric, got {type(value).__name__}")
    if math.isnan(value) or math.isinf(value):
        raise ConfigurationError(f"{name} must be finite, got {value}")


__all__ = [
    # Exception classes
    "HHGapError",
    "ConfigurationError",
    "RoutingError",
    "NumericalFailureError",
    "SimulationHaltedError",
    # Validation utilities
    "validate_positive",
    "validate_finite",
]
