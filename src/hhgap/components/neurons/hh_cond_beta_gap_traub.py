"""Traub-Miles Hodgkin-Huxley neuron with beta-function synapses and gap junctions.

The neuron advances its state one delivery slice at a time. Two kinds of
passes exist:

``update(origin, from_lag, to_lag)``
    Committing pass. For every step of the slice:

    1. integrate the ODE system across the step (adaptive RK45)
    2. add the spike weights received for the step to the conductance jumps
    3. run the spike detector / refractory state machine
    4. take the current received for the step as the drive of the next step

    Afterwards the neuron publishes constant-extrapolation coefficients
    (c_0 = V_end) for the first relaxation iteration of the next slice.

``wfr_update(origin, from_lag, to_lag)``
    Provisional waveform-relaxation pass for gap-junction coupled neurons.
    Runs on a copy of the committed state, never consumes input and never
    emits spikes. It samples V at every step boundary, compares it with the
    previous iterate and publishes interpolation coefficients of the
    configured order. Returns True once no sample moved by more than
    ``wfr_tol``.

Partner coefficients and the summed coupling conductance are cleared after
every pass; partners republish them every pass.

Spikes are stamped with step ``origin + lag + 1``: the spike is detected at
the end of step ``origin + lag``.

References:
    - Traub RD and Miles R (1991). Neuronal Networks of the Hippocampus.
      Cambridge University Press.
    - Brette R et al (2007). Simulation of networks of spiking neurons: A
      review of tools and strategies. J Comput Neurosci 23:349-98.
    - Hahne J et al (2015). A unified framework for spiking and gap-junction
      interactions in distributed neuronal network simulations.
      Front Neuroinform 9:22.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional
import logging

import torch
import torch.nn as nn

from hhgap.components.gap_junctions import (
    GapJunctionConfig,
    WaveformRelaxationBuffer,
    interpolation_coefficients,
)
from hhgap.components.neurons.calibration import NeuronVariables, calibrate
from hhgap.components.neurons.dynamics import DynamicsDrive, StateIndex, hh_traub_dynamics
from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.components.neurons.hh_traub_state import SETTABLE_STATE, NeuronState
from hhgap.components.neurons.recordables import RecordablesMap
from hhgap.components.neurons.spike_detector import SpikeDetector
from hhgap.components.synapses.input_buffer import InputRingBuffer, SynapseChannel, inject_spikes
from hhgap.core.event_system import SpikeEvent
from hhgap.errors import ConfigurationError, RoutingError, validate_finite
from hhgap.global_config import GlobalConfig
from hhgap.integration.rk45 import AdaptiveIntegrator, IntegratorConfig
from hhgap.units import CoefficientTensor

logger = logging.getLogger(__name__)

StepObserver = Callable[[int], None]
"""Called with the step index after each committed step."""

# Keys reported by get_status() that set_status() accepts and ignores
READ_ONLY_STATUS = ("refractory_steps_remaining", "recordables")


class HHCondBetaGapTraub(nn.Module):
    """Single Traub-Miles neuron with conductance-based beta synapses.

    Args:
        params: Model parameters; defaults to HHTraubParams()
        dt_ms: Simulation resolution (ms)
        slice_steps: Steps per delivery slice (sizes the relaxation buffers)
        integrator_config: RK45 tolerances
        gap_config: Interpolation order and relaxation tolerance
        input_horizon_steps: Number of future steps that can hold input
        name: Neuron name used in events, logs and error messages
        device: Torch device
        dtype: State dtype (float64 recommended)

    Example:
        >>> neuron = HHCondBetaGapTraub(name="n0")
        >>> neuron.receive_current(step=0, amplitude=1000.0)
        >>> spikes = neuron.update(origin=0, from_lag=0, to_lag=10)
    """

    def __init__(
        self,
        params: Optional[HHTraubParams] = None,
        dt_ms: float = GlobalConfig.DEFAULT_DT_MS,
        slice_steps: int = 10,
        integrator_config: Optional[IntegratorConfig] = None,
        gap_config: Optional[GapJunctionConfig] = None,
        input_horizon_steps: int = 1024,
        name: str = "hh_cond_beta_gap_traub",
        device: str | torch.device = "cpu",
        dtype: torch.dtype = torch.float64,
    ):
        super().__init__()

        params = params if params is not None else HHTraubParams()
        params.validate()

        self.name = name
        self.dt_ms = dt_ms
        self.slice_steps = slice_steps
        self.device = torch.device(device)
        self.dtype = dtype

        self._params = params
        self._variables: NeuronVariables = calibrate(params, dt_ms)
        self._state = NeuronState.at_rest(params, dtype=dtype, device=self.device)
        self.detector = SpikeDetector(params.V_T, self._variables.refractory_counts)

        # Input buffering
        self.inputs = InputRingBuffer(input_horizon_steps, owner=name, device=self.device, dtype=dtype)
        self.I_stim = 0.0

        # Integration; the sub-step size is carried from step to step
        self.integrator = AdaptiveIntegrator(integrator_config, name=name)
        self.integration_step_ms = dt_ms

        # Gap junctions
        self.gap = WaveformRelaxationBuffer(slice_steps, gap_config, dtype=dtype, device=self.device)
        self.published_coefficients: Optional[CoefficientTensor] = None
        self.last_wfr_deviation = float("inf")

        self.last_spike_step: Optional[int] = None
        self.recordables = RecordablesMap(lambda: self._state)
        self._observers: List[StepObserver] = []

    # =========================================================================
    # Parameters and calibration
    # =========================================================================

    @property
    def params(self) -> HHTraubParams:
        return self._params

    @property
    def variables(self) -> NeuronVariables:
        return self._variables

    def get_params(self) -> Dict[str, float]:
        return self._params.to_dict()

    def set_params(self, params: HHTraubParams | Mapping[str, Any]) -> None:
        """Replace the parameters and recalibrate.

        Accepts a full ``HHTraubParams`` or a partial dictionary applied on top
        of the current values. Validation and calibration both happen before
        anything is stored.

        Raises:
            ConfigurationError: Invalid value or uncalibratable resolution;
                parameters and derived variables are left unchanged
        """
        if isinstance(params, HHTraubParams):
            params.validate()
            new_params = params
        else:
            new_params = HHTraubParams.from_dict(params, base=self._params)
        new_variables = calibrate(new_params, self.dt_ms)

        self._params = new_params
        self._apply_variables(new_variables)

    def calibrate(self, dt_ms: Optional[float] = None) -> None:
        """Recompute derived constants, optionally for a new resolution.

        Raises:
            ConfigurationError: The refractory time is not a whole number of
                steps at ``dt_ms``; the previous calibration is kept
        """
        dt_ms = self.dt_ms if dt_ms is None else dt_ms
        new_variables = calibrate(self._params, dt_ms)
        self.dt_ms = dt_ms
        self.integration_step_ms = min(self.integration_step_ms, dt_ms)
        self._apply_variables(new_variables)

    def _apply_variables(self, variables: NeuronVariables) -> None:
        self._variables = variables
        self.detector = SpikeDetector(self._params.V_T, variables.refractory_counts)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> NeuronState:
        """Committed state."""
        return self._state

    def snapshot(self) -> NeuronState:
        return self._state

    def restore(self, state: NeuronState) -> None:
        self._state = state

    def set_state(self, **values: float) -> None:
        """Set V_m, Act_m, Inact_h and/or Act_n.

        Raises:
            ConfigurationError: Unknown name, non-finite or negative gating
                value; the state is left unchanged
        """
        self._state = self._state.with_values(**values)

    def get_recordable(self, name: str) -> float:
        try:
            accessor = self.recordables[name]
        except KeyError:
            raise ConfigurationError(
                f"[{self.name}] Unknown recordable '{name}'. Available: {self.recordables.get_list()}"
            ) from None
        return accessor()

    def get_status(self) -> Dict[str, Any]:
        """Parameters, settable state, refractory count and recordable names."""
        status: Dict[str, Any] = self._params.to_dict()
        status.update(self._state.to_dict())
        status["refractory_steps_remaining"] = self._state.r
        status["recordables"] = self.recordables.get_list()
        return status

    def set_status(self, status: Mapping[str, Any]) -> None:
        """Set parameters and state from one dictionary.

        All-or-nothing: if any entry is invalid neither parameters nor state
        change. Read-only entries reported by get_status() are ignored.

        Raises:
            ConfigurationError: Unknown key or invalid value
        """
        status = {k: v for k, v in status.items() if k not in READ_ONLY_STATUS}
        param_values = {k: v for k, v in status.items() if k not in SETTABLE_STATE}
        state_values = {k: v for k, v in status.items() if k in SETTABLE_STATE}

        new_params = HHTraubParams.from_dict(param_values, base=self._params)
        new_variables = calibrate(new_params, self.dt_ms)
        new_state = self._state.with_values(**state_values)

        self._params = new_params
        self._apply_variables(new_variables)
        self._state = new_state

    # =========================================================================
    # Input
    # =========================================================================

    def _check_receptor(self, receptor: int) -> None:
        if receptor != 0:
            raise RoutingError(self.name, f"Unknown receptor type {receptor}; only port 0 exists")

    def receive_spike(
        self,
        step: int,
        weight: float,
        channel: Optional[SynapseChannel | str] = None,
        multiplicity: int = 1,
        receptor: int = 0,
    ) -> SynapseChannel:
        """Buffer a spike for ``step``.

        Raises:
            RoutingError: Unknown receptor or channel, or step outside the
                input window
        """
        self._check_receptor(receptor)
        return self.inputs.add_spike(step, weight, channel, multiplicity)

    def receive_current(self, step: int, amplitude: float, receptor: int = 0) -> None:
        """Buffer a current of ``amplitude`` pA for ``step``."""
        self._check_receptor(receptor)
        self.inputs.add_current(step, amplitude)

    def receive_gap_junction(self, weight: float, coefficients: torch.Tensor, receptor: int = 0) -> None:
        """Accumulate one partner's coefficients for the next pass."""
        self._check_receptor(receptor)
        validate_finite(weight, "gap junction weight")
        self.gap.receive(weight, coefficients)

    def add_step_observer(self, observer: StepObserver) -> None:
        self._observers.append(observer)

    # =========================================================================
    # Update passes
    # =========================================================================

    def _rhs(self, I_stim: float, lag: int):
        params = self._params
        drive = DynamicsDrive(I_stim=I_stim, gap=self.gap.drive(lag, self.dt_ms))

        def rhs(t: float, y: torch.Tensor) -> torch.Tensor:
            return hh_traub_dynamics(t, y, params, drive)

        return rhs

    def _check_lags(self, from_lag: int, to_lag: int) -> None:
        if not 0 <= from_lag < to_lag <= self.slice_steps:
            raise ConfigurationError(
                f"[{self.name}] Invalid lag range [{from_lag}, {to_lag}) for slices of {self.slice_steps} steps"
            )

    def update(self, origin: int, from_lag: int, to_lag: int) -> List[SpikeEvent]:
        """Committing pass over steps ``origin + from_lag`` .. ``origin + to_lag - 1``.

        Returns:
            Spike events emitted during the slice

        Raises:
            NumericalFailureError: Integration failed; the state stays at the
                last completed step
        """
        self._check_lags(from_lag, to_lag)
        spikes: List[SpikeEvent] = []

        try:
            for lag in range(from_lag, to_lag):
                step = origin + lag
                state = self._state
                V_prev = state.V_m

                y, self.integration_step_ms = self.integrator.evolve(
                    self._rhs(self.I_stim, lag), state.y, self.dt_ms, self.integration_step_ms
                )
                state = state.with_vector(y)

                exc, inh, current = self.inputs.read(step)
                state = inject_spikes(state, self._variables, exc, inh)

                decision = self.detector.step(state.r, V_prev, state.V_m)
                self._state = state.with_refractory(decision.r)
                if decision.spiked:
                    self.last_spike_step = step + 1
                    spikes.append(SpikeEvent(step=step + 1, sender=self.name))

                self.I_stim = current

                for observer in self._observers:
                    observer(step)
        finally:
            self.gap.reset_received()

        self.inputs.advance_to(origin + to_lag)

        coefficients = self.gap.new_coefficients()
        coefficients[from_lag:to_lag, 0] = self._state.V_m
        self.published_coefficients = coefficients
        self.gap.reset_iterates()

        if spikes:
            logger.debug(f"[{self.name}] {len(spikes)} spike(s) in slice starting at step {origin}")
        return spikes

    def wfr_update(self, origin: int, from_lag: int, to_lag: int) -> bool:
        """Provisional relaxation pass on a copy of the committed state.

        Publishes interpolation coefficients of the pass in
        ``published_coefficients`` and the largest change of any V sample
        against the previous iterate in ``last_wfr_deviation``.

        Returns:
            True if no V sample changed by more than ``wfr_tol``
        """
        self._check_lags(from_lag, to_lag)
        order = self.gap.config.interpolation_order
        coefficients = self.gap.new_coefficients()
        tol_exceeded = False
        max_deviation = 0.0

        state = self.snapshot()
        I_stim = self.I_stim
        h = self.integration_step_ms

        try:
            for lag in range(from_lag, to_lag):
                step = origin + lag
                rhs = self._rhs(I_stim, lag)

                y_i = state.V_m
                hf_i = self.dt_ms * float(rhs(0.0, state.y)[StateIndex.V_M]) if order == 3 else 0.0

                y, h = self.integrator.evolve(rhs, state.y, self.dt_ms, h)
                state = state.with_vector(y)

                exc, inh, current = self.inputs.peek(step)
                state = inject_spikes(state, self._variables, exc, inh)

                y_ip1 = state.V_m
                max_deviation = max(max_deviation, abs(y_ip1 - float(self.gap.last_y_values[lag])))
                tol_exceeded = self.gap.check_and_store(lag, y_ip1) or tol_exceeded

                hf_ip1 = self.dt_ms * float(rhs(self.dt_ms, state.y)[StateIndex.V_M]) if order == 3 else 0.0
                coefficients[lag] = torch.tensor(
                    interpolation_coefficients(order, y_i, y_ip1, hf_i, hf_ip1),
                    dtype=coefficients.dtype,
                    device=coefficients.device,
                )

                I_stim = current
        finally:
            self.gap.reset_received()

        self.published_coefficients = coefficients
        self.last_wfr_deviation = max_deviation
        return not tol_exceeded

    def initial_coefficients(self) -> CoefficientTensor:
        """Constant extrapolation of the current potential over a whole slice.

        Published once before the first slice, so coupled partners start
        from each other's initial potentials.
        """
        coefficients = self.gap.new_coefficients()
        coefficients[:, 0] = self._state.V_m
        self.published_coefficients = coefficients
        return coefficients

    def __repr__(self) -> str:
        return (
            f"HHCondBetaGapTraub(name={self.name!r}, V_m={self._state.V_m:.3f} mV, "
            f"r={self._state.r}, dt={self.dt_ms} ms)"
        )


__all__ = ["HHCondBetaGapTraub", "StepObserver"]
