"""Spike detection and refractory state machine.

Spike detection is done by a combined threshold-and-local-maximum search: a
spike is emitted at a step boundary if

    V_m >= V_T + 30 mV  and  V_m has fallen during the step just completed.

To avoid that this leads to multiple spikes during the falling flank of a
spike, the refractory period must be long enough to clear the flank; Traub
and Miles used t_ref = 3 ms, the Brette et al. (2007) benchmark 2 ms.

    ┌────────┐  V >= thr and V_prev > V  ┌────────────┐
    │ ACTIVE │ ────────────────────────▶ │ REFRACTORY │  r = refractory_counts
    └────────┘ ◀──────────────────────── └────────────┘
                      r reaches 0          r -= 1 per step

A perfectly flat step (V_prev == V) is not a falling flank and never triggers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hhgap.global_config import GlobalConfig


class DetectorState(Enum):
    """Phase of the refractory state machine."""

    ACTIVE = "active"
    REFRACTORY = "refractory"


@dataclass(frozen=True)
class SpikeDecision:
    """Outcome of one detector evaluation.

    Attributes:
        spiked: True when a spike must be emitted for this step
        r: Refractory count to store in the new state
    """

    spiked: bool
    r: int


class SpikeDetector:
    """Threshold-and-falling-flank detector with a refractory lockout.

    Args:
        V_T: Voltage offset of the model (mV)
        refractory_counts: Steps of lockout after a spike
        margin_mv: Margin above V_T required for detection
    """

    def __init__(
        self,
        V_T: float,
        refractory_counts: int,
        margin_mv: float = GlobalConfig.SPIKE_THRESHOLD_MARGIN_MV,
    ):
        self.threshold = V_T + margin_mv
        self.refractory_counts = refractory_counts

    @staticmethod
    def phase(r: int) -> DetectorState:
        return DetectorState.REFRACTORY if r > 0 else DetectorState.ACTIVE

    def step(self, r: int, V_prev: float, V: float) -> SpikeDecision:
        """Evaluate the detector once at a step boundary.

        Args:
            r: Refractory steps remaining before this step's evaluation
            V_prev: Membrane potential at the start of the step
            V: Membrane potential at the end of the step

        Returns:
            SpikeDecision with the new refractory count
        """
        if r > 0:
            # Detection is skipped entirely while refractory
            return SpikeDecision(spiked=False, r=r - 1)

        if V >= self.threshold and V_prev > V:
            return SpikeDecision(spiked=True, r=self.refractory_counts)

        return SpikeDecision(spiked=False, r=0)
