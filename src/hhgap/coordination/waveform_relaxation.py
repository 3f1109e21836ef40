"""
Slice-by-slice scheduler with waveform relaxation for gap junctions.

The scheduler owns a population of neurons, their spike connections and the
gap-junction coupling table, and advances all of them one delivery slice at
a time.

Per slice:
==========

    publish initial coefficients (first slice only)
            │
            ▼
    ┌────────────────────────────────────────────┐
    │ coupled neurons: wfr_update (parallel)     │◄──┐
    │ barrier                                    │   │ not converged and
    │ exchange coefficients                      │   │ iterations < max
    └────────────────────────────────────────────┘───┘
            │ all converged (or iteration cap: warning)
            ▼
    ┌────────────────────────────────────────────┐
    │ all neurons: update (parallel)             │
    │ barrier                                    │
    │ exchange constant extrapolation            │
    │ route spikes through delayed connections   │
    └────────────────────────────────────────────┘

Neurons are distributed over worker threads in disjoint subsets; each worker
only touches the neurons of its subset, and all cross-neuron traffic
(coefficient exchange, spike routing) happens on the scheduling thread
between barriers.
The worker pool only exists while run_slice() or run() executes.

A numerical failure halts the scheduler: neurons that already finished the
slice keep it, so the network has no common step to resume from.

Spike connections must have a delay of at least one slice so that every
spike lands in a slice that has not started yet.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, TypeVar
import logging

from hhgap.components.gap_junctions import GapJunctionCoupling
from hhgap.components.neurons.hh_cond_beta_gap_traub import HHCondBetaGapTraub
from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.components.synapses.input_buffer import SynapseChannel, resolve_channel
from hhgap.config.base import SimulationConfig
from hhgap.core.event_system import Connection, SpikeEvent
from hhgap.errors import (
    ConfigurationError,
    NumericalFailureError,
    SimulationHaltedError,
    validate_finite,
    validate_positive,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SliceReport:
    """What happened during one delivery slice.

    Attributes:
        origin: First step of the slice
        iterations: Relaxation iterations performed (0 without coupling)
        converged: False if the iteration cap was hit
        deviations: Largest V change between iterates, per iteration (mV)
        spikes: Spikes emitted during the slice
    """

    origin: int
    iterations: int = 0
    converged: bool = True
    deviations: List[float] = field(default_factory=list)
    spikes: List[SpikeEvent] = field(default_factory=list)


class WaveformRelaxationScheduler:
    """Drives a population of neurons through time.

    Args:
        config: Simulation configuration; defaults to SimulationConfig()

    Example:
        >>> sim = WaveformRelaxationScheduler(SimulationConfig(slice_steps=10))
        >>> a, b = sim.add_neuron(), sim.add_neuron()
        >>> sim.connect_gap(a, b, weight=5.0)
        >>> sim.neurons[a].set_state(V_m=-55.0)
        >>> reports = sim.run(n_slices=20)
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        self.neurons: List[HHCondBetaGapTraub] = []
        self.connections: Dict[int, List[Connection]] = {}
        self._gap_pairs: List[tuple[int, int, float]] = []

        self.coupling: Optional[GapJunctionCoupling] = None
        self.current_step = 0
        self.reports: List[SliceReport] = []
        self.failed_step: Optional[int] = None

        # Worker pool, alive only while run_slice() or run() executes
        self._executor: Optional[ThreadPoolExecutor] = None

    # =========================================================================
    # Network construction
    # =========================================================================

    def _check_not_started(self) -> None:
        if self.coupling is not None:
            raise ConfigurationError("The network cannot be changed after the simulation has started")

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.neurons):
            raise ConfigurationError(f"Unknown neuron index {index} ({len(self.neurons)} neurons)")

    def add_neuron(self, params: Optional[HHTraubParams] = None, name: Optional[str] = None) -> int:
        """Create a neuron calibrated to the simulation resolution.

        Returns:
            Index of the new neuron
        """
        self._check_not_started()
        index = len(self.neurons)
        cfg = self.config
        neuron = HHCondBetaGapTraub(
            params=params,
            dt_ms=cfg.dt_ms,
            slice_steps=cfg.slice_steps,
            integrator_config=cfg.integrator,
            gap_config=cfg.gap_junctions,
            input_horizon_steps=cfg.input_horizon_steps,
            name=name or f"neuron_{index}",
            device=cfg.get_torch_device(),
            dtype=cfg.get_torch_dtype(),
        )
        self.neurons.append(neuron)
        self.connections[index] = []
        return index

    def connect(
        self,
        pre: int,
        post: int,
        weight: float,
        delay_steps: Optional[int] = None,
        channel: Optional[SynapseChannel | str] = None,
    ) -> Connection:
        """Add a spike connection from ``pre`` to ``post``.

        Args:
            weight: Peak conductance (nS) per spike
            delay_steps: Transmission delay; defaults to one slice
            channel: Target channel; None selects by the sign of the weight

        Raises:
            ConfigurationError: Unknown neuron, invalid channel or a weight
                sign contradicting it, or delay shorter than a slice or
                beyond the input horizon
        """
        self._check_index(pre)
        self._check_index(post)
        validate_finite(weight, "weight")
        delay_steps = self.config.slice_steps if delay_steps is None else delay_steps
        if not self.config.slice_steps <= delay_steps <= self.config.input_horizon_steps:
            raise ConfigurationError(
                f"delay_steps must lie in [{self.config.slice_steps}, {self.config.input_horizon_steps}], "
                f"got {delay_steps}"
            )
        try:
            resolved = resolve_channel(weight, channel) if channel is not None else None
        except ValueError as e:
            raise ConfigurationError(str(e)) from None

        connection = Connection(pre=pre, post=post, weight=weight, delay_steps=delay_steps, channel=resolved)
        self.connections[pre].append(connection)
        return connection

    def connect_gap(self, i: int, j: int, weight: float) -> None:
        """Add a symmetric gap junction of ``weight`` nS between neurons i and j."""
        self._check_not_started()
        self._check_index(i)
        self._check_index(j)
        if i == j:
            raise ConfigurationError("A neuron cannot be gap-junction coupled to itself")
        validate_positive(weight, "gap junction weight")
        self._gap_pairs.append((i, j, weight))

    def inject_current(self, neuron: int, step: int, amplitude: float) -> None:
        self._check_index(neuron)
        self.neurons[neuron].receive_current(step, amplitude)

    def inject_spike(
        self,
        neuron: int,
        step: int,
        weight: float,
        channel: Optional[SynapseChannel | str] = None,
        multiplicity: int = 1,
    ) -> None:
        self._check_index(neuron)
        self.neurons[neuron].receive_spike(step, weight, channel, multiplicity)

    # =========================================================================
    # Execution
    # =========================================================================

    def _prepare(self) -> GapJunctionCoupling:
        if self.coupling is not None:
            return self.coupling
        if not self.neurons:
            raise ConfigurationError("Cannot simulate an empty network")

        coupling = GapJunctionCoupling(len(self.neurons), device=self.config.get_torch_device())
        for i, j, weight in self._gap_pairs:
            coupling.connect(i, j, weight)
        self.coupling = coupling

        coupled = coupling.coupled_indices()
        if coupled:
            for i in coupled:
                self.neurons[i].initial_coefficients()
            self._exchange(coupling)
            logger.info(f"Waveform relaxation enabled: {coupling}")
        return coupling

    @contextmanager
    def _workers(self) -> Iterator[None]:
        """Keep a worker pool alive for the duration of the block.

        Nested blocks reuse the outer pool; with a single thread no pool is
        created and neurons are updated on the calling thread.
        """
        if self._executor is not None or self.config.n_threads <= 1:
            yield
            return
        with ThreadPoolExecutor(max_workers=self.config.n_threads, thread_name_prefix="hhgap-worker") as executor:
            self._executor = executor
            try:
                yield
            finally:
                self._executor = None

    def _map(self, fn: Callable[[HHCondBetaGapTraub], T], indices: Sequence[int]) -> List[T]:
        """Apply ``fn`` to the given neurons, in parallel over disjoint subsets.

        Returns results in the order of ``indices``. Blocks until every
        worker has finished (barrier); the first worker exception is
        re-raised.
        """
        if self._executor is None or len(indices) < 2:
            return [fn(self.neurons[i]) for i in indices]

        n_workers = min(self.config.n_threads, len(indices))
        subsets = [list(range(k, len(indices), n_workers)) for k in range(n_workers)]

        def work(positions: List[int]) -> List[T]:
            return [fn(self.neurons[indices[p]]) for p in positions]

        futures = [self._executor.submit(work, subset) for subset in subsets]
        results: List[Optional[T]] = [None] * len(indices)
        for subset, future in zip(subsets, futures):
            for position, result in zip(subset, future.result()):
                results[position] = result
        return results  # type: ignore[return-value]

    def _exchange(self, coupling: GapJunctionCoupling) -> None:
        published = [neuron.published_coefficients for neuron in self.neurons]
        coupling.exchange(published, self.neurons)

    def _route(self, pre: int, spikes: Sequence[SpikeEvent]) -> None:
        for event in spikes:
            for connection in self.connections[pre]:
                self.neurons[connection.post].receive_spike(
                    connection.delivery_step(event),
                    connection.weight,
                    connection.channel,
                    event.multiplicity,
                )

    def run_slice(self) -> SliceReport:
        """Advance every neuron by one delivery slice.

        Raises:
            NumericalFailureError: Integration of some neuron failed. The
                scheduler halts: neurons that finished the slice keep it,
                the clock is not advanced, and later calls raise
                SimulationHaltedError.
            SimulationHaltedError: An earlier slice failed
        """
        if self.failed_step is not None:
            raise SimulationHaltedError(self.failed_step)

        coupling = self._prepare()
        origin = self.current_step
        slice_steps = self.config.slice_steps
        report = SliceReport(origin=origin)
        all_indices = list(range(len(self.neurons)))
        coupled = coupling.coupled_indices()

        try:
            with self._workers():
                if coupled:
                    self._relax(coupling, coupled, report)
                spikes_per_neuron = self._map(lambda n: n.update(origin, 0, slice_steps), all_indices)
        except NumericalFailureError as e:
            self.failed_step = origin
            logger.error(f"Numerical failure in slice starting at step {origin}, halting: {e}")
            raise

        if coupled:
            self._exchange(coupling)

        for pre, spikes in zip(all_indices, spikes_per_neuron):
            self._route(pre, spikes)
            report.spikes.extend(spikes)
        report.spikes.sort()

        self.current_step = origin + slice_steps
        self.reports.append(report)
        return report

    def _relax(self, coupling: GapJunctionCoupling, coupled: List[int], report: SliceReport) -> None:
        """Iterate relaxation passes of the coupled neurons until they converge or hit the cap."""
        origin = report.origin
        slice_steps = self.config.slice_steps
        while True:
            report.iterations += 1
            converged = self._map(lambda n: n.wfr_update(origin, 0, slice_steps), coupled)
            report.deviations.append(max(self.neurons[i].last_wfr_deviation for i in coupled))
            self._exchange(coupling)

            if all(converged):
                break
            if report.iterations >= self.config.wfr_max_iterations:
                report.converged = False
                logger.warning(
                    f"Waveform relaxation did not converge within {report.iterations} iterations "
                    f"in slice starting at step {origin} (max deviation "
                    f"{report.deviations[-1]:.3g} mV); accepting the last iterate"
                )
                break
        logger.debug(f"Slice {origin}: {report.iterations} relaxation iteration(s)")

    def run(self, n_slices: int) -> List[SliceReport]:
        if n_slices < 0:
            raise ConfigurationError(f"n_slices must be non-negative, got {n_slices}")
        with self._workers():
            return [self.run_slice() for _ in range(n_slices)]

    def simulate(self, duration_ms: float) -> List[SliceReport]:
        """Run for ``duration_ms``, which must be a whole number of slices."""
        n_slices = round(duration_ms / self.config.slice_ms)
        if abs(n_slices * self.config.slice_ms - duration_ms) > 1e-9 * max(1.0, duration_ms):
            raise ConfigurationError(
                f"Duration {duration_ms} ms is not a multiple of the slice length {self.config.slice_ms} ms"
            )
        return self.run(n_slices)

    @property
    def time_ms(self) -> float:
        return self.current_step * self.config.dt_ms


__all__ = ["WaveformRelaxationScheduler", "SliceReport"]
