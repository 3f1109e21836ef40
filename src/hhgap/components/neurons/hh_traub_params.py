"""Parameters of the Traub-Miles Hodgkin-Huxley neuron with beta synapses.

Default values are those of the hh_coba benchmark of Brette et al. (2007),
which is based on the hippocampal pyramidal cell model of Traub & Miles (1991).

Units:
======
============ ======  =======================================================
g_Na         nS      Sodium peak conductance
g_K          nS      Potassium peak conductance
g_L          nS      Leak conductance
C_m          pF      Capacity of the membrane
E_Na         mV      Sodium reversal potential
E_K          mV      Potassium reversal potential
E_L          mV      Leak reversal potential
V_T          mV      Voltage offset that controls dynamics. For default
                     parameters, V_T = -63 mV results in a threshold around
                     -50 mV
E_ex         mV      Excitatory synaptic reversal potential
E_in         mV      Inhibitory synaptic reversal potential
tau_rise_ex  ms      Excitatory synaptic beta function rise time
tau_decay_ex ms      Excitatory synaptic beta function decay time
tau_rise_in  ms      Inhibitory synaptic beta function rise time
tau_decay_in ms      Inhibitory synaptic beta function decay time
t_ref        ms      Duration of refractory period
I_e          pA      External DC input current
============ ======  =======================================================

References:
    - Brette R et al (2007). Simulation of networks of spiking neurons: A
      review of tools and strategies. J Comput Neurosci 23:349-98.
    - Traub RD and Miles R (1991). Neuronal Networks of the Hippocampus.
      Cambridge University Press.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Mapping

from hhgap.errors import ConfigurationError, validate_finite, validate_positive


# Fields that must be strictly positive (conductances, capacitance, time constants)
POSITIVE_FIELDS = (
    "g_Na",
    "g_K",
    "g_L",
    "C_m",
    "tau_rise_ex",
    "tau_decay_ex",
    "tau_rise_in",
    "tau_decay_in",
)


@dataclass(frozen=True)
class HHTraubParams:
    """Independent parameters of the model.

    Instances are immutable; a parameter update replaces the whole object.
    Use ``validate()`` (called by the neuron on every update) to check the
    physical constraints, and ``to_dict()``/``from_dict()`` for the
    dictionary-based parameter interface.
    """

    # Conductances (nS)
    g_Na: float = 20000.0
    g_K: float = 6000.0
    g_L: float = 10.0

    # Membrane capacitance (pF)
    C_m: float = 200.0

    # Reversal potentials (mV)
    E_Na: float = 50.0
    E_K: float = -90.0
    E_L: float = -60.0
    E_ex: float = 0.0
    E_in: float = -80.0

    # Voltage offset of the gating kinetics (mV)
    V_T: float = -63.0

    # Beta-function synaptic time constants (ms)
    tau_rise_ex: float = 0.5
    tau_decay_ex: float = 5.0
    tau_rise_in: float = 0.5
    tau_decay_in: float = 10.0

    # Refractory period (ms)
    t_ref: float = 2.0

    # External DC current (pA)
    I_e: float = 0.0

    def validate(self) -> None:
        """Check positivity and finiteness of every field.

        Raises:
            ConfigurationError: On the first violated constraint
        """
        for f in fields(self):
            validate_finite(getattr(self, f.name), f.name)
        for name in POSITIVE_FIELDS:
            validate_positive(getattr(self, name), name)
        validate_positive(self.t_ref, "t_ref", allow_zero=True)

    def to_dict(self) -> Dict[str, float]:
        """Return all parameters as a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any], base: "HHTraubParams | None" = None) -> "HHTraubParams":
        """Build validated parameters from a (possibly partial) dictionary.

        Missing keys are taken from ``base`` (defaults if None).

        Raises:
            ConfigurationError: If a key is unknown or a value is invalid
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown parameter(s): {', '.join(unknown)}")

        params = replace(base if base is not None else cls(), **dict(values))
        params.validate()
        return params
