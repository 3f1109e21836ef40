"""Derived constants of the Traub-Miles neuron.

Recomputed whenever the parameters or the simulation resolution change.
Calibration is a pure function: it returns new ``NeuronVariables`` and never
touches the neuron state.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.errors import ConfigurationError, validate_positive

# Relative tolerance for t_ref being a whole number of steps
REFRACTORY_STEP_TOLERANCE = 1e-9


@dataclass(frozen=True)
class NeuronVariables:
    """Internal variables of the model.

    Attributes:
        PSConInit_E: Impulse added to DG_EXC per unit excitatory weight so
            that the conductance excursion peaks at 1 nS
        PSConInit_I: Same for DG_INH
        refractory_counts: Refractory period in steps
        step_ms: Resolution the variables were calibrated for
    """

    PSConInit_E: float
    PSConInit_I: float
    refractory_counts: int
    step_ms: float


def beta_peak_time(tau_rise: float, tau_decay: float) -> float:
    """Time (ms) after arrival at which the beta-function conductance peaks."""
    if abs(tau_decay - tau_rise) <= 1e-12 * max(tau_decay, tau_rise):
        return tau_decay
    return tau_decay * tau_rise * math.log(tau_decay / tau_rise) / (tau_decay - tau_rise)


def normalisation_factor(tau_rise: float, tau_decay: float) -> float:
    """Jump impulse giving a unit-amplitude beta-function conductance.

    The (jump, level) pair integrates to

        g(t) = dg0 * (exp(-t/tau_d) - exp(-t/tau_r)) / (1/tau_r - 1/tau_d)

    so the impulse dg0 producing peak g(t_p) = 1 is the reciprocal of the
    bracketed expression at the peak time. For tau_r == tau_d the response is
    an alpha function, dg0 * t * exp(-t/tau), peaking at tau with factor e/tau.
    """
    if abs(tau_decay - tau_rise) > 1e-12 * max(tau_decay, tau_rise):
        t_p = beta_peak_time(tau_rise, tau_decay)
        denom = math.exp(-t_p / tau_decay) - math.exp(-t_p / tau_rise)
        if denom == 0.0:
            raise ConfigurationError(
                f"Beta function cannot be normalised for tau_rise={tau_rise}, tau_decay={tau_decay}"
            )
        return (1.0 / tau_rise - 1.0 / tau_decay) / denom
    return math.e / tau_decay


def refractory_steps(t_ref: float, step_ms: float) -> int:
    """Refractory period expressed in whole simulation steps.

    Raises:
        ConfigurationError: If t_ref is not a whole number of steps
    """
    ratio = t_ref / step_ms
    counts = int(round(ratio))
    if abs(ratio - counts) > REFRACTORY_STEP_TOLERANCE * max(1.0, abs(ratio)):
        raise ConfigurationError(
            f"Refractory time t_ref={t_ref} ms must be a multiple of the resolution {step_ms} ms"
        )
    return counts


def calibrate(params: HHTraubParams, step_ms: float) -> NeuronVariables:
    """Compute all derived constants for ``params`` at resolution ``step_ms``.

    Raises:
        ConfigurationError: Invalid resolution or non-integer refractory count
    """
    validate_positive(step_ms, "step_ms")
    return NeuronVariables(
        PSConInit_E=normalisation_factor(params.tau_rise_ex, params.tau_decay_ex),
        PSConInit_I=normalisation_factor(params.tau_rise_in, params.tau_decay_in),
        refractory_counts=refractory_steps(params.t_ref, step_ms),
        step_ms=step_ms,
    )
