"""
Numerical integration of the neuron ODE system.
"""

from hhgap.integration.rk45 import AdaptiveIntegrator, IntegratorConfig, RHSFunction

__all__ = ["AdaptiveIntegrator", "IntegratorConfig", "RHSFunction"]
