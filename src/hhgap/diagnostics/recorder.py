"""
State recorder for a single neuron.

Samples recordables after committed steps at a fixed interval, like a
multimeter attached to the neuron. Samples are taken at step boundaries:
after step s is committed the state describes time (s + 1) * dt.

Usage:
    >>> recorder = StateRecorder(neuron, record_from=("V_m", "g_ex"), interval_steps=1)
    >>> neuron.update(origin=0, from_lag=0, to_lag=10)
    >>> data = recorder.to_numpy()
    >>> data["times_ms"], data["V_m"]
"""

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np

from hhgap.components.neurons.hh_cond_beta_gap_traub import HHCondBetaGapTraub
from hhgap.errors import ConfigurationError


class StateRecorder:
    """Records recordables of one neuron every ``interval_steps`` steps.

    Args:
        neuron: Neuron to observe; the recorder registers itself on it
        record_from: Names of recordables to sample
        interval_steps: Sampling interval in steps (>= 1)
    """

    def __init__(
        self,
        neuron: HHCondBetaGapTraub,
        record_from: Sequence[str] = ("V_m",),
        interval_steps: int = 1,
    ):
        available = neuron.recordables.get_list()
        unknown = [name for name in record_from if name not in available]
        if unknown:
            raise ConfigurationError(
                f"[{neuron.name}] Unknown recordable(s) {unknown}. Available: {available}"
            )
        if not isinstance(interval_steps, int) or interval_steps < 1:
            raise ConfigurationError(f"interval_steps must be a positive integer, got {interval_steps}")

        self.neuron = neuron
        self.record_from = tuple(record_from)
        self.interval_steps = interval_steps

        self.steps: List[int] = []
        self.values: Dict[str, List[float]] = {name: [] for name in self.record_from}

        neuron.add_step_observer(self._on_step)

    def _on_step(self, step: int) -> None:
        # Sample the state at the end of the step
        if (step + 1) % self.interval_steps != 0:
            return
        self.steps.append(step + 1)
        for name in self.record_from:
            self.values[name].append(self.neuron.recordables[name]())

    @property
    def n_samples(self) -> int:
        return len(self.steps)

    def to_numpy(self) -> Dict[str, np.ndarray]:
        """Samples as arrays, with the sample times under ``times_ms``."""
        data = {"times_ms": np.asarray(self.steps, dtype=np.float64) * self.neuron.dt_ms}
        for name, samples in self.values.items():
            data[name] = np.asarray(samples, dtype=np.float64)
        return data

    def clear(self) -> None:
        self.steps.clear()
        for samples in self.values.values():
            samples.clear()
