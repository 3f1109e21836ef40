"""
Input ring buffer and synaptic injection for a single neuron.

Incoming spike weights and currents are accumulated per simulation step in a
circular buffer and consumed once per step by the update loop:

- spike weights go to the jump variable of the excitatory or inhibitory
  beta-function conductance pair, scaled by the unit-amplitude impulse
- currents become the stimulus drive of the following step

Events landing on the same step sum linearly. The buffer covers a fixed
horizon of future steps starting at the first step that has not been consumed
yet; events outside that window are routing errors.

Timing convention: input stamped for step s is applied at the end of the
integration of step s, i.e. it acts from time (s + 1) * dt on.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

import torch
import torch.nn as nn

from hhgap.errors import RoutingError, validate_finite

if TYPE_CHECKING:
    from hhgap.components.neurons.calibration import NeuronVariables
    from hhgap.components.neurons.hh_traub_state import NeuronState


class SynapseChannel(Enum):
    """Synaptic channel targeted by a spike event."""

    EXCITATORY = "excitatory"
    INHIBITORY = "inhibitory"


# Row of each input kind in the ring buffer
_EXC, _INH, _CURRENT = 0, 1, 2


def resolve_channel(weight: float, channel: Optional[SynapseChannel | str]) -> SynapseChannel:
    """Select the channel for a spike: explicit tag, otherwise the weight sign.

    Excitatory weights are non-negative and inhibitory weights non-positive;
    a tag only confirms the channel the sign implies (and picks one for a
    zero weight).

    Raises:
        ValueError: If ``channel`` is not a valid channel name, or the sign
            of ``weight`` contradicts it
    """
    if channel is None:
        return SynapseChannel.EXCITATORY if weight > 0.0 else SynapseChannel.INHIBITORY
    if not isinstance(channel, SynapseChannel):
        try:
            channel = SynapseChannel(channel)
        except ValueError:
            raise ValueError(f"Unknown synapse channel: {channel!r}") from None
    if channel is SynapseChannel.EXCITATORY and weight < 0.0:
        raise ValueError(f"Negative weight {weight} sent to the excitatory channel")
    if channel is SynapseChannel.INHIBITORY and weight > 0.0:
        raise ValueError(f"Positive weight {weight} sent to the inhibitory channel")
    return channel


class InputRingBuffer(nn.Module):
    """Circular buffer of per-step spike and current input.

    Memory: O(horizon_steps)
    Add/Read: O(1)

    Args:
        horizon_steps: Number of future steps that can hold input
        owner: Name of the receiving neuron (for error messages)
        device: Torch device
        dtype: Data type of the accumulators
    """

    def __init__(
        self,
        horizon_steps: int,
        owner: str = "neuron",
        device: str | torch.device = "cpu",
        dtype: torch.dtype = torch.float64,
    ):
        if horizon_steps <= 0:
            raise ValueError(f"horizon_steps must be > 0, got {horizon_steps}")

        super().__init__()

        self.horizon_steps = horizon_steps
        self.owner = owner

        # Buffer: [horizon_steps, 3] with rows (exc weight, inh weight, current)
        self.buffer: torch.Tensor
        self.register_buffer(
            "buffer",
            torch.zeros((horizon_steps, 3), dtype=dtype, device=device),
        )

        # First step that has not been consumed yet
        self.origin = 0

    def _slot(self, step: int) -> int:
        if step < self.origin:
            raise RoutingError(
                self.owner,
                f"Input for step {step} arrived after that step was simulated (now at {self.origin})",
            )
        if step >= self.origin + self.horizon_steps:
            raise RoutingError(
                self.owner,
                f"Input for step {step} is beyond the buffer horizon "
                f"({self.origin} + {self.horizon_steps} steps)",
            )
        return step % self.horizon_steps

    def add_spike(
        self,
        step: int,
        weight: float,
        channel: Optional[SynapseChannel | str] = None,
        multiplicity: int = 1,
    ) -> SynapseChannel:
        """Accumulate a spike of ``weight`` for ``step``.

        The magnitude |weight| * multiplicity is added to the selected
        channel so conductances stay non-negative. A tagged channel must
        agree with the sign of the weight.

        Returns:
            The channel the weight was added to

        Raises:
            RoutingError: Unknown channel, weight sign contradicting the
                channel, invalid multiplicity, or step outside the buffer
                window. Nothing is accumulated.
        """
        validate_finite(weight, "weight")
        try:
            resolved = resolve_channel(weight, channel)
        except ValueError as e:
            raise RoutingError(self.owner, str(e)) from None
        if multiplicity < 1:
            raise RoutingError(self.owner, f"Spike multiplicity must be >= 1, got {multiplicity}")

        slot = self._slot(step)
        row = _EXC if resolved is SynapseChannel.EXCITATORY else _INH
        self.buffer[slot, row] += abs(weight) * multiplicity
        return resolved

    def add_current(self, step: int, amplitude: float) -> None:
        """Accumulate a current of ``amplitude`` pA for ``step``."""
        validate_finite(amplitude, "amplitude")
        self.buffer[self._slot(step), _CURRENT] += amplitude

    def peek(self, step: int) -> Tuple[float, float, float]:
        """Return (exc, inh, current) for ``step`` without consuming it."""
        exc, inh, current = self.buffer[self._slot(step)].tolist()
        return exc, inh, current

    def read(self, step: int) -> Tuple[float, float, float]:
        """Return (exc, inh, current) for ``step`` and clear the slot."""
        slot = self._slot(step)
        exc, inh, current = self.buffer[slot].tolist()
        self.buffer[slot].zero_()
        return exc, inh, current

    def advance_to(self, step: int) -> None:
        """Mark all steps before ``step`` as consumed."""
        while self.origin < step:
            self.buffer[self.origin % self.horizon_steps].zero_()
            self.origin += 1


def inject_spikes(state: NeuronState, variables: NeuronVariables, exc: float, inh: float) -> NeuronState:
    """Apply one step's accumulated spike weights to the conductance jumps."""
    if exc == 0.0 and inh == 0.0:
        return state
    return state.with_increments(
        DG_EXC=exc * variables.PSConInit_E,
        DG_INH=inh * variables.PSConInit_I,
    )
