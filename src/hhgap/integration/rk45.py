"""
Error-controlled integration of the neuron state across one simulation step.

Wraps ``scipy.integrate.RK45`` (Dormand-Prince 5(4) with local extrapolation)
in step mode. The solver is bounded by the step duration, so the last
sub-step always lands exactly on the step boundary; sub-stepping stays
internal and callers only see the state at the boundary together with the
sub-step size to start from next time.

Step-size control:
==================
For every attempted sub-step the embedded pair gives a local error estimate
err. With the scale

    sc_i = eps_abs + eps_rel * max(|y_i|, |y_new_i|)

a sub-step is accepted when the RMS norm of err / sc is below one, and
rejected and retried with a smaller sub-step otherwise. A trial state
containing NaN or Inf never satisfies the norm and is rejected the same way.

On top of the solver's own control, an accepted sub-step shorter than
``min_step_ms`` that does not end on the step boundary is a failure: the
step is aborted with NumericalFailureError and the state is never clamped.

References:
    - Dormand JR, Prince PJ (1980). A family of embedded Runge-Kutta
      formulae. J Comput Appl Math 6(1):19-26.
    - Hairer E, Norsett SP, Wanner G (1993). Solving Ordinary Differential
      Equations I, Sec. II.4.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np
import torch
from scipy.integrate import RK45

from hhgap.errors import ConfigurationError, NumericalFailureError, validate_positive

RHSFunction = Callable[[float, torch.Tensor], torch.Tensor]
"""Right-hand side f(t, y) -> dy/dt with t measured from the start of the step."""

# Smallest relative tolerance scipy's solvers accept without overriding it
MIN_EPS_REL = 100 * np.finfo(np.float64).eps


@dataclass
class IntegratorConfig:
    """Tolerances of the adaptive integrator.

    Attributes:
        eps_abs: Absolute error tolerance per state element
        eps_rel: Relative error tolerance
        min_step_ms: Shortest accepted sub-step before the step fails
    """

    eps_abs: float = 1e-6
    eps_rel: float = 1e-9
    min_step_ms: float = 1e-10

    def __post_init__(self) -> None:
        validate_positive(self.eps_abs, "eps_abs", allow_zero=True)
        validate_positive(self.eps_rel, "eps_rel")
        validate_positive(self.min_step_ms, "min_step_ms")
        if self.eps_rel < MIN_EPS_REL:
            raise ConfigurationError(f"eps_rel must be at least {MIN_EPS_REL:.3g}, got {self.eps_rel}")


class AdaptiveIntegrator:
    """Adaptive RK45 stepper for a single neuron.

    Args:
        config: Tolerances; defaults to IntegratorConfig()
        name: Owner name used in error messages
    """

    def __init__(self, config: IntegratorConfig | None = None, name: str = "integrator"):
        self.config = config or IntegratorConfig()
        self.name = name
        self.n_accepted = 0
        self.n_evaluations = 0

    def _fail(self, message: str, t_ms: float, h_ms: float) -> NumericalFailureError:
        return NumericalFailureError(self.name, message, t_ms=t_ms, h_ms=h_ms)

    def evolve(
        self,
        rhs: RHSFunction,
        y: torch.Tensor,
        step_ms: float,
        h: float,
    ) -> Tuple[torch.Tensor, float]:
        """Advance ``y`` from 0 to exactly ``step_ms``.

        Args:
            rhs: Right-hand side f(t, y), t in [0, step_ms]
            y: State at the start of the step (not modified)
            step_ms: Step duration (ms)
            h: Initial sub-step size, typically the value returned by the
                previous call

        Returns:
            (y_end, h_next): state at the step boundary and the sub-step
            size to start the next step with

        Raises:
            NumericalFailureError: If no acceptable sub-step >= min_step_ms exists
        """
        cfg = self.config
        dtype, device = y.dtype, y.device

        def fun(t: float, y_np: np.ndarray) -> np.ndarray:
            dydt = rhs(t, torch.tensor(y_np, dtype=dtype, device=device))
            return dydt.detach().cpu().numpy()

        solver = RK45(
            fun,
            0.0,
            y.detach().cpu().numpy().astype(np.float64),
            step_ms,
            first_step=min(max(h, cfg.min_step_ms), step_ms),
            rtol=cfg.eps_rel,
            atol=cfg.eps_abs,
        )
        h_next = solver.h_abs

        while solver.status == "running":
            t_old = solver.t
            h_proposed = solver.h_abs
            message = solver.step()
            if solver.status == "failed":
                raise self._fail(f"Adaptive integration failed: {message}", t_old, solver.h_abs)

            taken = solver.t - t_old
            if solver.status == "finished":
                # A sub-step clipped to the boundary says nothing about the natural size
                h_next = h_proposed if taken < h_proposed else solver.h_abs
            elif taken < cfg.min_step_ms:
                raise self._fail(
                    "Adaptive integration failed: local error tolerance not met "
                    f"above minimum sub-step {cfg.min_step_ms:g} ms",
                    t_old,
                    taken,
                )
            self.n_accepted += 1

        self.n_evaluations += solver.nfev
        y_end = torch.tensor(solver.y, dtype=dtype, device=device)
        return y_end, min(float(h_next), step_ms)


__all__ = ["AdaptiveIntegrator", "IntegratorConfig", "RHSFunction", "MIN_EPS_REL"]
