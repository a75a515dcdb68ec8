import logging
from dataclasses import dataclass, field

import numpy as np

from cnmf_temporal.kernel import kernel_for
from cnmf_temporal.models import ConvergenceState, Method
from cnmf_temporal.temporal.bookkeeping import (
    Bookkeeper,
    CorrelationBookkeeper,
    ResidualBookkeeper,
)
from cnmf_temporal.temporal.dispatch import ComponentEstimate, UpdateRule, make_update_rule
from cnmf_temporal.temporal.params import TemporalUpdaterParams
from cnmf_temporal.temporal.partition import partition_pixels, validate_inputs

logger = logging.getLogger(__name__)


class ComponentUpdateError(RuntimeError):
    """A solver failed while updating one source; the whole update is abandoned."""

    def __init__(self, component: int, method: Method):
        self.component = component
        self.method = method
        super().__init__(f"Updating temporal component {component} with '{method.value}' failed.")


@dataclass
class TemporalUpdateResult:
    traces: np.ndarray
    """Shape: (sources × frames)"""
    background: np.ndarray
    """Shape: (frames,)"""
    residual: np.ndarray
    """``Y - A C - b f`` at every pixel. Shape: (pixels × frames)"""
    params: TemporalUpdaterParams
    """Input parameters, with per-source kernels after re-estimation."""
    estimates: list[ComponentEstimate] = field(default_factory=list)
    multipliers: np.ndarray | None = None
    """Lagrange multipliers to carry into the next call (noise_constrained only)."""
    state: ConvergenceState = ConvergenceState.INIT
    n_iterations: int = 0
    changes: list[float] = field(default_factory=list)
    """Relative change of the temporal matrix after every sweep."""

    @property
    def converged(self) -> bool:
        return self.state is ConvergenceState.CONVERGED

    def to_record(self) -> dict:
        """Parameters plus per-source outputs, keyed like the classic parameter struct."""
        record = self.params.to_dict()
        record["gn"] = [e.kernel for e in self.estimates]
        record["b"] = [e.baseline for e in self.estimates]
        record["c1"] = [e.initial for e in self.estimates]
        record["neuron_sn"] = [e.noise for e in self.estimates]
        return record


def relative_change(previous: np.ndarray, current: np.ndarray) -> float:
    norm = np.linalg.norm(current)
    difference = np.linalg.norm(previous - current)
    if norm == 0:
        return 0.0 if difference == 0 else np.inf
    return float(difference / norm)


def update_temporal_components(
    observation: np.ndarray,
    footprints: np.ndarray,
    background: np.ndarray,
    traces: np.ndarray,
    background_trace: np.ndarray,
    params: TemporalUpdaterParams | None = None,
    multipliers: np.ndarray | None = None,
) -> TemporalUpdateResult:
    """
    Update temporal components and background given fixed spatial components.

    Block-coordinate descent over all sources and the background. In every sweep
    the components are visited in random order; each one is isolated from the
    mixture by removing all other current contributions, fitted with the chosen
    update rule, and put back. The background is clipped at zero instead of being
    deconvolved. Sweeps stop when the temporal matrix changes by less than
    ``params.tolerance`` (relative Frobenius norm) or after ``params.outer_iterations``.

    Args:
        observation (np.ndarray): Raw data. Shape: (pixels × frames)
        footprints (np.ndarray): Spatial footprints A. Shape: (pixels × sources)
        background (np.ndarray): Spatial background b. Shape: (pixels,)
        traces (np.ndarray): Current temporal components C. Shape: (sources × frames)
        background_trace (np.ndarray): Current temporal background f. Shape: (frames,)
        params (TemporalUpdaterParams): Method and options. Defaults to constrained_foopsi,
            which then needs ``kernel`` or ``kernel_order``.
        multipliers (np.ndarray): Lagrange multipliers from a previous call
            (noise_constrained only). Shape: (constraints × sources)

    Returns:
        TemporalUpdateResult: Updated traces, background, full residual and estimates.
    """
    if params is None:
        params = TemporalUpdaterParams()
    observation, footprints, background, traces, background_trace = validate_inputs(
        observation, footprints, background, traces, background_trace
    )
    partition = partition_pixels(
        observation,
        footprints,
        background,
        params.interpolation_map,
        params.unsaturated_pixel_indices,
    )

    n_sources = footprints.shape[1]
    rng = np.random.default_rng(params.seed)
    rule = make_update_rule(params, partition, n_sources, rng, multipliers)

    augmented = np.hstack([partition.footprints, partition.background[:, None]])
    C = np.vstack([traces, background_trace[None, :]])
    bookkeeper: Bookkeeper = (
        ResidualBookkeeper(partition.observation, augmented, C)
        if rule.uses_residual
        else CorrelationBookkeeper(partition.observation, augmented, C)
    )

    state = ConvergenceState.ITERATING
    changes = []
    for iteration in range(params.outer_iterations):
        previous = C.copy()
        _sweep(C, rule, bookkeeper, rng.permutation(n_sources + 1), params.progress_interval)

        changes.append(relative_change(previous, C))
        logger.debug(f"Sweep {iteration + 1}: relative change {changes[-1]:.3e}")
        if changes[-1] <= params.tolerance:
            state = ConvergenceState.CONVERGED
            break
    else:
        state = ConvergenceState.ITERATION_LIMIT_REACHED
    logger.info(f"Temporal update finished after {len(changes)} sweeps: {state.name}")

    if isinstance(bookkeeper, ResidualBookkeeper):
        fit_residual = bookkeeper.residual
    else:
        fit_residual = partition.observation - augmented @ C

    traces, background_trace = C[:n_sources], C[n_sources]
    residual = partition.merge_residual(fit_residual, traces, background_trace)

    return TemporalUpdateResult(
        traces=traces,
        background=background_trace,
        residual=residual,
        params=_written_back(params, rule),
        estimates=rule.estimates,
        multipliers=getattr(rule, "multipliers", None),
        state=state,
        n_iterations=len(changes),
        changes=changes,
    )


def _sweep(
    C: np.ndarray,
    rule: UpdateRule,
    bookkeeper: Bookkeeper,
    order: np.ndarray,
    progress_interval: int,
) -> None:
    n_sources = C.shape[0] - 1
    for visited, index in enumerate(order, start=1):
        if bookkeeper.observable(index):
            # the dual reads the residual directly; only the background needs its trace
            project = index == n_sources or not rule.uses_residual
            isolated = bookkeeper.isolate(index, C[index], project=project)
            if index == n_sources:
                new = np.maximum(isolated, 0)
            else:
                try:
                    new = rule.fit(index, isolated, bookkeeper)
                except Exception as e:
                    raise ComponentUpdateError(int(index), rule.method) from e
            bookkeeper.reabsorb(index, new)
            C[index] = new
        elif index == n_sources:
            C[index] = np.maximum(C[index], 0)

        if visited % progress_interval == 0:
            logger.info(f"{visited} out of total {len(order)} temporal components updated")


def _written_back(params: TemporalUpdaterParams, rule: UpdateRule) -> TemporalUpdaterParams:
    restimated = rule.method in (Method.MCEM_foopsi, Method.MCMC) or (
        rule.method is Method.constrained_foopsi and params.restimate_kernel
    )
    if not restimated or all(e.kernel is None for e in rule.estimates):
        return params.copy()

    # sources skipped as unobservable keep the kernel they came in with
    kernels = {}
    for index, estimate in enumerate(rule.estimates):
        kernel = estimate.kernel
        if kernel is None:
            kernel = kernel_for(params.kernel, index)
        if kernel is not None:
            kernels[index] = kernel
    return params.update(kernel=kernels)
