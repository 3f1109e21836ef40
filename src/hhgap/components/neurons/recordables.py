"""Table of recordable quantities of a neuron.

Built once per neuron at construction time: maps recordable names to
read-only accessor closures over the neuron's current state.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Mapping

from hhgap.components.neurons.dynamics import StateIndex
from hhgap.components.neurons.hh_traub_state import NeuronState

# Recordable name -> state vector element
RECORDABLE_ELEMENTS = {
    "V_m": StateIndex.V_M,
    "Act_m": StateIndex.HH_M,
    "Inact_h": StateIndex.HH_H,
    "Act_n": StateIndex.HH_N,
    "g_ex": StateIndex.G_EXC,
    "g_in": StateIndex.G_INH,
}


class RecordablesMap(Mapping[str, Callable[[], float]]):
    """Read-only mapping from recordable name to accessor.

    Args:
        get_state: Callable returning the neuron's current committed state

    Example:
        >>> recordables = RecordablesMap(lambda: neuron.state)
        >>> recordables["V_m"]()
        -60.0
    """

    def __init__(self, get_state: Callable[[], NeuronState]):
        self._accessors: Dict[str, Callable[[], float]] = {
            name: self._make_accessor(get_state, index) for name, index in RECORDABLE_ELEMENTS.items()
        }

    @staticmethod
    def _make_accessor(get_state: Callable[[], NeuronState], index: StateIndex) -> Callable[[], float]:
        def accessor() -> float:
            return get_state()[index]

        return accessor

    def __getitem__(self, name: str) -> Callable[[], float]:
        return self._accessors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._accessors)

    def __len__(self) -> int:
        return len(self._accessors)

    def get_list(self) -> List[str]:
        """Names of all recordables, in registration order."""
        return list(self._accessors)
