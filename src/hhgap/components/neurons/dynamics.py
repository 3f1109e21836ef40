"""Right-hand side of the Traub-Miles HH model with beta synapses and gap drive.

Membrane equation:

    C_m dV/dt = -I_Na - I_K - I_L - I_syn_ex - I_syn_in + I_stim + I_e + I_gap

    I_Na = g_Na m^3 h (V - E_Na)
    I_K  = g_K n^4 (V - E_K)
    I_L  = g_L (V - E_L)
    I_syn_ex = g_ex (V - E_ex)
    I_syn_in = g_in (V - E_in)

Gating kinetics use V_u = V - V_T:

    alpha_n = 0.032 (15 - V_u) / (exp((15 - V_u) / 5) - 1)
    beta_n  = 0.5 exp((10 - V_u) / 40)
    alpha_m = 0.32 (13 - V_u) / (exp((13 - V_u) / 4) - 1)
    beta_m  = 0.28 (V_u - 40) / (exp((V_u - 40) / 5) - 1)
    alpha_h = 0.128 exp((17 - V_u) / 18)
    beta_h  = 4 / (1 + exp((40 - V_u) / 5))

Each synaptic conductance is a (jump, level) pair producing a beta function:

    d(dg)/dt = -dg / tau_rise
    dg/dt    = dg - g / tau_decay

Gap junctions contribute

    I_gap = -sum_j g_ij V + sum_j g_ij V_j(t)

where sum_j g_ij V_j(t) is the weighted piecewise polynomial published by the
coupled partners, evaluated at the fractional position within the step.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

import torch

from hhgap.components.gap_junctions import GapDrive
from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.units import StateTensor


class StateIndex(IntEnum):
    """Symbolic indices to the elements of the state vector."""

    V_M = 0
    HH_M = 1
    HH_H = 2
    HH_N = 3
    DG_EXC = 4
    G_EXC = 5
    DG_INH = 6
    G_INH = 7


STATE_VEC_SIZE = len(StateIndex)


# =============================================================================
# Gating rate functions
# =============================================================================


# Below this |x| the linear expansion of x / (exp(x/k) - 1) is used
_EXPREL_EPS = 1e-6


def _exprel(x: torch.Tensor, k: float) -> torch.Tensor:
    """x / (exp(x / k) - 1), continuous through its removable point x = 0.

    The limit there is k; near it the expansion k - x/2 is exact to
    O(x^2 / k).
    """
    small = x.abs() < _EXPREL_EPS
    x_safe = torch.where(small, torch.ones_like(x), x)
    return torch.where(small, k - 0.5 * x, x_safe / torch.expm1(x_safe / k))


def gating_rates(V_u: torch.Tensor) -> tuple[torch.Tensor, ...]:
    """Opening/closing rates (1/ms) for m, h and n at shifted potential V_u."""
    alpha_n = 0.032 * _exprel(15.0 - V_u, 5.0)
    beta_n = 0.5 * torch.exp((10.0 - V_u) / 40.0)
    alpha_m = 0.32 * _exprel(13.0 - V_u, 4.0)
    beta_m = 0.28 * _exprel(V_u - 40.0, 5.0)
    alpha_h = 0.128 * torch.exp((17.0 - V_u) / 18.0)
    beta_h = 4.0 / (1.0 + torch.exp((40.0 - V_u) / 5.0))
    return alpha_m, beta_m, alpha_h, beta_h, alpha_n, beta_n


def steady_state_gating(V: torch.Tensor, V_T: float) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Equilibrium values (m_inf, h_inf, n_inf) of the gating variables at V."""
    alpha_m, beta_m, alpha_h, beta_h, alpha_n, beta_n = gating_rates(V - V_T)
    return (
        alpha_m / (alpha_m + beta_m),
        alpha_h / (alpha_h + beta_h),
        alpha_n / (alpha_n + beta_n),
    )


# =============================================================================
# Drive terms
# =============================================================================


@dataclass(frozen=True)
class DynamicsDrive:
    """External drive terms of one step.

    Attributes:
        I_stim: Current injected by current events during this step (pA)
        gap: Gap-junction drive, or None for uncoupled neurons
    """

    I_stim: float = 0.0
    gap: Optional[GapDrive] = None


# =============================================================================
# Right-hand side
# =============================================================================


def hh_traub_dynamics(
    t: float,
    y: StateTensor,
    params: HHTraubParams,
    drive: DynamicsDrive,
) -> torch.Tensor:
    """Compute dy/dt for the full state vector.

    Pure function: depends only on its arguments and returns a new tensor.

    Args:
        t: Time within the current step (ms), used by the gap drive
        y: State vector [STATE_VEC_SIZE]
        params: Model parameters
        drive: Current and gap-junction drive for the step

    Returns:
        Derivative vector [STATE_VEC_SIZE]
    """
    V = y[StateIndex.V_M]
    m = y[StateIndex.HH_M]
    h = y[StateIndex.HH_H]
    n = y[StateIndex.HH_N]
    dg_ex = y[StateIndex.DG_EXC]
    g_ex = y[StateIndex.G_EXC]
    dg_in = y[StateIndex.DG_INH]
    g_in = y[StateIndex.G_INH]

    I_Na = params.g_Na * m * m * m * h * (V - params.E_Na)
    I_K = params.g_K * n * n * n * n * (V - params.E_K)
    I_L = params.g_L * (V - params.E_L)
    I_syn_exc = g_ex * (V - params.E_ex)
    I_syn_inh = g_in * (V - params.E_in)

    I_gap = drive.gap.current(t, V) if drive.gap is not None else 0.0

    alpha_m, beta_m, alpha_h, beta_h, alpha_n, beta_n = gating_rates(V - params.V_T)

    return torch.stack(
        [
            (-I_Na - I_K - I_L - I_syn_exc - I_syn_inh + drive.I_stim + params.I_e + I_gap) / params.C_m,
            alpha_m - (alpha_m + beta_m) * m,
            alpha_h - (alpha_h + beta_h) * h,
            alpha_n - (alpha_n + beta_n) * n,
            -dg_ex / params.tau_rise_ex,
            dg_ex - g_ex / params.tau_decay_ex,
            -dg_in / params.tau_rise_in,
            dg_in - g_in / params.tau_decay_in,
        ]
    )
