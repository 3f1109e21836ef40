"""
Gap junction electrical coupling with waveform relaxation.

Gap junctions are direct electrical connections between neurons via connexin
protein channels. The coupling adds a current to each neuron

    I_gap,i = sum_j g_ij (V_j - V_i)

Because every coupled neuron needs its partners' potentials *during* the
step, coupled trajectories are resolved by waveform relaxation: within one
delivery slice each neuron integrates with its partners' previous-iteration
trajectories, publishes a piecewise polynomial of its own trajectory, and the
iteration repeats until no potential changes by more than ``wfr_tol``.

Interpolation:
==============
For step ``lag`` of the slice with start/end potentials y_i, y_ip1 and
scaled derivatives hf_i = h dV/dt(start), hf_ip1 = h dV/dt(end), the
polynomial in tau = t/h in [0, 1] is

    order 0:  c = [y_i]
    order 1:  c = [y_i, y_ip1 - y_i]
    order 3:  c = [y_i, hf_i,
                   -3 y_i + 3 y_ip1 - 2 hf_i - hf_ip1,
                    2 y_i - 2 y_ip1 + hf_i + hf_ip1]      (cubic Hermite)

After a committing pass a neuron publishes the constant extrapolation
c = [V_end, 0, ...] for every step; that is the drive of the first
iteration of the next slice.

References:
    - Hahne J et al (2015). A unified framework for spiking and gap-junction
      interactions in distributed neuronal network simulations.
      Front Neuroinform 9:22.
    - Lelarasmee E, Ruehli AE, Sangiovanni-Vincentelli AL (1982). The
      waveform relaxation method for time-domain analysis of large scale
      integrated circuits. IEEE Trans CAD 1:131-145.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import torch
import torch.nn as nn

from hhgap.errors import ConfigurationError, validate_positive
from hhgap.global_config import GlobalConfig
from hhgap.units import CoefficientTensor

SUPPORTED_INTERPOLATION_ORDERS = (0, 1, 3)


@dataclass(frozen=True)
class GapDrive:
    """Coupling drive of one step, frozen for the duration of the step.

    Attributes:
        sumj_g_ij: Sum of coupling conductances of all partners (nS)
        coefficients: Conductance-weighted partner polynomial for this step,
            shape [order + 1]; evaluates to sum_j g_ij V_j(t) in nS*mV = pA
        step_ms: Step duration used to map time to the unit interval
    """

    sumj_g_ij: float
    coefficients: CoefficientTensor
    step_ms: float

    def current(self, t: float, V: torch.Tensor) -> torch.Tensor:
        """Gap-junction current (pA) at time t (ms) within the step."""
        tau = t / self.step_ms
        # Horner evaluation of c_0 + c_1 tau + ... + c_k tau^k
        poly = torch.zeros((), dtype=self.coefficients.dtype, device=self.coefficients.device)
        for c in reversed(self.coefficients):
            poly = poly * tau + c
        return poly - self.sumj_g_ij * V


@dataclass
class GapJunctionConfig:
    """Configuration of waveform relaxation for gap junctions.

    Attributes:
        interpolation_order: Order of the exchanged piecewise polynomial (0, 1 or 3)
        wfr_tol: Convergence tolerance on the potential (mV) between iterates
    """

    interpolation_order: int = GlobalConfig.DEFAULT_INTERPOLATION_ORDER
    wfr_tol: float = GlobalConfig.DEFAULT_WFR_TOL

    def __post_init__(self) -> None:
        if self.interpolation_order not in SUPPORTED_INTERPOLATION_ORDERS:
            raise ConfigurationError("Interpolation order must be 0, 1, or 3.")
        validate_positive(self.wfr_tol, "wfr_tol")

    @property
    def n_coefficients(self) -> int:
        return self.interpolation_order + 1


def interpolation_coefficients(
    order: int,
    y_i: float,
    y_ip1: float,
    hf_i: float = 0.0,
    hf_ip1: float = 0.0,
) -> List[float]:
    """Coefficients of the polynomial of ``order`` over one step (see module docstring)."""
    if order == 0:
        return [y_i]
    if order == 1:
        return [y_i, y_ip1 - y_i]
    if order == 3:
        return [
            y_i,
            hf_i,
            -3.0 * y_i + 3.0 * y_ip1 - 2.0 * hf_i - hf_ip1,
            2.0 * y_i - 2.0 * y_ip1 + hf_i + hf_ip1,
        ]
    raise ConfigurationError("Interpolation order must be 0, 1, or 3.")


class WaveformRelaxationBuffer:
    """Per-neuron gap-junction buffers for one delivery slice.

    Owns
    - ``last_y_values``: potentials of the previous iterate, one per step
    - ``interpolation_coefficients``: sum_j g_ij c_j received from partners
    - ``sumj_g_ij``: summed coupling conductance of all partners

    Received data is cleared after every pass; partners republish every pass.

    Args:
        slice_steps: Steps per delivery slice
        config: Interpolation order and tolerance
    """

    def __init__(
        self,
        slice_steps: int,
        config: Optional[GapJunctionConfig] = None,
        dtype: torch.dtype = torch.float64,
        device: Optional[torch.device] = None,
    ):
        self.slice_steps = slice_steps
        self.config = config or GapJunctionConfig()
        self.dtype = dtype
        self.device = device

        self.last_y_values = torch.zeros(slice_steps, dtype=dtype, device=device)
        self.interpolation_coefficients: CoefficientTensor = self._zeros()
        self.sumj_g_ij = 0.0

    def _zeros(self) -> torch.Tensor:
        return torch.zeros(
            (self.slice_steps, self.config.n_coefficients), dtype=self.dtype, device=self.device
        )

    def new_coefficients(self) -> CoefficientTensor:
        """Empty coefficient table to be filled by one pass."""
        return self._zeros()

    def receive(self, weight: float, coefficients: torch.Tensor) -> None:
        """Accumulate one partner's published coefficients with conductance ``weight``."""
        if tuple(coefficients.shape) != (self.slice_steps, self.config.n_coefficients):
            raise ConfigurationError(
                f"Gap-junction coefficients must have shape "
                f"({self.slice_steps}, {self.config.n_coefficients}), got {tuple(coefficients.shape)}"
            )
        self.sumj_g_ij += weight
        self.interpolation_coefficients = self.interpolation_coefficients + weight * coefficients.to(
            dtype=self.dtype
        )

    def drive(self, lag: int, step_ms: float) -> Optional[GapDrive]:
        """Coupling drive for step ``lag``, or None when nothing was received."""
        if self.sumj_g_ij == 0.0:
            return None
        return GapDrive(
            sumj_g_ij=self.sumj_g_ij,
            coefficients=self.interpolation_coefficients[lag],
            step_ms=step_ms,
        )

    def check_and_store(self, lag: int, V: float) -> bool:
        """Compare V with the previous iterate at ``lag`` and remember it.

        Returns:
            True if the deviation exceeds ``wfr_tol``
        """
        exceeded = abs(V - float(self.last_y_values[lag])) > self.config.wfr_tol
        self.last_y_values[lag] = V
        return exceeded

    def reset_received(self) -> None:
        """Clear partner data after a pass."""
        self.sumj_g_ij = 0.0
        self.interpolation_coefficients = self._zeros()

    def reset_iterates(self) -> None:
        """Forget the previous iterate (after a committing pass)."""
        self.last_y_values = torch.zeros(self.slice_steps, dtype=self.dtype, device=self.device)


class GapJunctionCoupling(nn.Module):
    """
    Gap junction coupling table of a neuron network.

    Holds the symmetric conductance matrix and performs the coefficient
    exchange between relaxation iterations:

        received[i] = sum_j g_ij * published[j]

    Only neurons with at least one partner take part in waveform relaxation.

    Usage:
        >>> coupling = GapJunctionCoupling(n_neurons=2)
        >>> coupling.connect(0, 1, weight=5.0)  # 5 nS between neuron 0 and 1
        >>> coupling.partners(0)
        [(1, 5.0)]
    """

    def __init__(self, n_neurons: int, device: Optional[torch.device] = None):
        super().__init__()
        if n_neurons <= 0:
            raise ConfigurationError(f"n_neurons must be > 0, got {n_neurons}")
        self.n_neurons = n_neurons
        self.coupling_matrix: torch.Tensor
        self.register_buffer(
            "coupling_matrix", torch.zeros(n_neurons, n_neurons, dtype=torch.float64, device=device)
        )

    def connect(self, i: int, j: int, weight: float) -> None:
        """Create (or strengthen) a bidirectional gap junction of ``weight`` nS."""
        if i == j:
            raise ConfigurationError("A neuron cannot be gap-junction coupled to itself")
        if not (0 <= i < self.n_neurons and 0 <= j < self.n_neurons):
            raise ConfigurationError(f"Neuron index out of range: ({i}, {j}) for {self.n_neurons} neurons")
        validate_positive(weight, "gap junction weight")
        self.coupling_matrix[i, j] += weight
        self.coupling_matrix[j, i] += weight

    def partners(self, i: int) -> List[tuple[int, float]]:
        """(partner index, conductance) pairs of neuron ``i``."""
        row = self.coupling_matrix[i]
        return [(int(j), float(row[j])) for j in torch.nonzero(row > 0).flatten()]

    def is_coupled(self, i: int) -> bool:
        return bool((self.coupling_matrix[i] > 0).any())

    def coupled_indices(self) -> List[int]:
        return [i for i in range(self.n_neurons) if self.is_coupled(i)]

    def coupling_current(self, voltages: torch.Tensor) -> torch.Tensor:
        """
        Instantaneous coupling current I_i = sum_j g_ij (V_j - V_i) in pA.

        Args:
            voltages: Membrane potentials [n_neurons]
        """
        voltages = voltages.to(self.coupling_matrix.dtype)
        neighbor_contribution = self.coupling_matrix @ voltages
        self_contribution = self.coupling_matrix.sum(dim=1) * voltages
        return neighbor_contribution - self_contribution

    def exchange(self, published: Sequence[Optional[torch.Tensor]], receivers: Sequence) -> None:
        """Deliver every neuron's published coefficients to its partners.

        Args:
            published: Coefficient table per neuron (None if it published nothing)
            receivers: Per-neuron objects exposing
                ``receive_gap_junction(weight, coefficients)``
        """
        for i in range(self.n_neurons):
            for j, weight in self.partners(i):
                coefficients = published[j]
                if coefficients is not None:
                    receivers[i].receive_gap_junction(weight, coefficients)

    def get_coupling_stats(self) -> Dict[str, float]:
        """
        Statistics about the gap junction network structure.

        Returns:
            Dictionary with n_coupled_neurons, n_connections, avg_neighbors
            and total_conductance (nS, each pair counted once)
        """
        has_coupling = (self.coupling_matrix > 0).any(dim=1)
        n_coupled = int(has_coupling.sum().item())
        n_connections = int((self.coupling_matrix > 0).sum().item()) // 2
        neighbors_per_neuron = (self.coupling_matrix > 0).sum(dim=1).to(torch.float64)
        avg_neighbors = float(neighbors_per_neuron[has_coupling].mean().item()) if n_coupled > 0 else 0.0
        return {
            "n_coupled_neurons": n_coupled,
            "n_connections": n_connections,
            "avg_neighbors": avg_neighbors,
            "total_conductance": float(self.coupling_matrix.sum().item()) / 2.0,
        }

    def __repr__(self) -> str:
        stats = self.get_coupling_stats()
        return (
            f"GapJunctionCoupling("
            f"{stats['n_coupled_neurons']}/{self.n_neurons} coupled, "
            f"{stats['n_connections']} connections, "
            f"g_total={stats['total_conductance']:.3f} nS)"
        )


__all__ = [
    "GapDrive",
    "GapJunctionConfig",
    "GapJunctionCoupling",
    "WaveformRelaxationBuffer",
    "interpolation_coefficients",
    "SUPPORTED_INTERPOLATION_ORDERS",
]
