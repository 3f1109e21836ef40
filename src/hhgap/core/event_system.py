"""
Events exchanged between neurons.

Two kinds of traffic reach a neuron besides external current:

1. Spike events: emitted by a committing update pass, stamped with the step
   at whose end the spike was detected plus one, and routed to targets
   through weighted, delayed connections.
2. Gap-junction traffic: the piecewise polynomial of a coupled partner's
   membrane potential over one delivery slice, republished every pass. It is exchanged as coefficient tables by
   the coupling table rather than as events.

Time is measured in integer simulation steps; milliseconds only appear at
the edges (recorder output, scheduler durations).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from hhgap.components.synapses.input_buffer import SynapseChannel


@dataclass(frozen=True, order=True)
class SpikeEvent:
    """A spike emitted by a neuron.

    Events are ordered by step; the sender does not take part in ordering.
    """

    step: int
    sender: str = field(compare=False)
    multiplicity: int = field(default=1, compare=False)


@dataclass(frozen=True)
class Connection:
    """A weighted, delayed spike connection between two neurons.

    Attributes:
        pre: Index of the sending neuron
        post: Index of the receiving neuron
        weight: Synaptic weight (nS peak conductance per spike)
        delay_steps: Transmission delay in steps (>= slice length)
        channel: Target channel; None selects by the sign of the weight
    """

    pre: int
    post: int
    weight: float
    delay_steps: int
    channel: Optional[SynapseChannel] = None

    def delivery_step(self, event: SpikeEvent) -> int:
        """Step whose input slot receives ``event``."""
        # A spike stamped s with delay d must act from step s + d on, and
        # input for step k acts from k + 1.
        return event.step + self.delay_steps - 1


__all__ = [
    "SpikeEvent",
    "Connection",
]
