# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Batch least-squares parameter estimation.

Observations are grouped in ObservationSets (one observable type, one set
of link ends). Each iteration computes the residuals and the design
matrix at the current parameter values, solves the weighted normal
equations (with an optional a-priori information matrix) and updates the
parameters, until EstimationConvergenceChecker stops the loop. The
parameters are left at the estimate with the lowest RMS residual.

Design-matrix columns of an initial-state parameter are the link-end
state partials chained with the state transition matrix of the Kepler
ephemeris; other parameters enter through the observation partials
directly (bias) or not at all (zero columns).
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from tracklink.domain.ephemerides import propagate_kepler_orbit
from tracklink.domain.estimatable_parameters import (
    EstimatableParameterSet,
    EstimatableParameterType,
    InitialTranslationalState,
)
from tracklink.domain.link_ends import (
    LinkEnds,
    LinkEndType,
    ObservableType,
    link_end_index,
    observable_name,
    observable_size,
)
from tracklink.domain.observation_partials import ObservationPartial, create_observation_partial
from tracklink.domain.observation_setup import ObservationSimulator, SimulatedObservation

_log = logging.getLogger(__name__)


class KeplerStateTransitionInterface:
    """State transition matrices of bodies with an estimated Kepler initial state.

    Phi(t, t0) is computed by central differences of the Kepler propagation
    with 1 m position and 1 mm/s velocity perturbations.
    """

    _POSITION_PERTURBATION_M = 1.0
    _VELOCITY_PERTURBATION_M_S = 0.001

    def __init__(self, parameter_set: EstimatableParameterSet) -> None:
        self._parameters: dict[str, InitialTranslationalState] = {
            parameter.associated_body: parameter
            for parameter in parameter_set.parameters
            if parameter.parameter_type is EstimatableParameterType.INITIAL_BODY_STATE
        }

    @property
    def body_names(self) -> tuple[str, ...]:
        return tuple(self._parameters)

    def state_transition_matrix(self, body_name: str, time: float) -> np.ndarray:
        try:
            ephemeris = self._parameters[body_name].ephemeris
        except KeyError:
            raise ValueError(f"No initial state of '{body_name}' is estimated") from None
        initial_state = ephemeris.initial_state
        dt = float(time) - ephemeris.reference_epoch
        mu = ephemeris.gravitational_parameter

        stm = np.zeros((6, 6))
        for j in range(6):
            eps = self._POSITION_PERTURBATION_M if j < 3 else self._VELOCITY_PERTURBATION_M_S
            state_plus = initial_state.copy()
            state_plus[j] += eps
            state_minus = initial_state.copy()
            state_minus[j] -= eps
            stm[:, j] = (
                propagate_kepler_orbit(state_plus, dt, mu)
                - propagate_kepler_orbit(state_minus, dt, mu)
            ) / (2.0 * eps)
        return stm


@dataclass(frozen=True)
class ObservationSet:
    """Observed values of one observable for one set of link ends.

    observations and weights are flattened: len(times) * observable size
    entries, observation by observation.
    """
    observable_type: ObservableType
    link_ends: LinkEnds
    times: tuple[float, ...]
    reference_link_end: LinkEndType
    observations: np.ndarray
    weights: np.ndarray | None = None

    def __post_init__(self) -> None:
        expected = len(self.times) * observable_size(self.observable_type)
        if self.observations.shape != (expected,):
            raise ValueError(
                f"{observable_name(self.observable_type)} observation set needs {expected} "
                f"values, got {self.observations.shape}"
            )
        if self.weights is not None and self.weights.shape != (expected,):
            raise ValueError(f"Weights must have {expected} entries, got {self.weights.shape}")
        if self.weights is not None and np.any(self.weights < 0.0):
            raise ValueError("Observation weights must be non-negative")

    @property
    def size(self) -> int:
        return self.observations.shape[0]

    @classmethod
    def from_simulated_observations(
        cls,
        simulated: Sequence[SimulatedObservation],
        weight: float | None = None,
    ) -> "ObservationSet":
        """Group simulated observations (same observable, link ends and reference)."""
        if not simulated:
            raise ValueError("Cannot create an observation set from no observations")
        first = simulated[0]
        for observation in simulated:
            if (
                observation.observable_type is not first.observable_type
                or observation.link_ends != first.link_ends
                or observation.reference_link_end is not first.reference_link_end
            ):
                raise ValueError("Simulated observations do not share observable and link ends")
        observations = np.concatenate([observation.value for observation in simulated])
        weights = None if weight is None else np.full(observations.shape, float(weight))
        return cls(
            observable_type=first.observable_type,
            link_ends=first.link_ends,
            times=tuple(observation.time for observation in simulated),
            reference_link_end=first.reference_link_end,
            observations=observations,
            weights=weights,
        )


class ObservationManager:
    """Computed observations and design-matrix rows for one observable type."""

    def __init__(
        self,
        observation_simulator: ObservationSimulator,
        parameter_set: EstimatableParameterSet,
        state_transition_interface: KeplerStateTransitionInterface,
    ) -> None:
        self._simulator = observation_simulator
        self._parameter_set = parameter_set
        self._state_transition_interface = state_transition_interface
        self._partials: dict[LinkEnds, ObservationPartial] = {}
        for link_ends, model in observation_simulator.observation_models.items():
            self._partials[link_ends] = create_observation_partial(
                observation_simulator.observable_type,
                link_ends,
                getattr(model, "taylor_series_order", 3),
            )

    @property
    def observable_type(self) -> ObservableType:
        return self._simulator.observable_type

    def observation_partial(self, link_ends: LinkEnds) -> ObservationPartial:
        try:
            return self._partials[link_ends]
        except KeyError:
            raise ValueError(
                f"No {observable_name(self.observable_type)} partial for link ends {link_ends}"
            ) from None

    def compute_observations_and_partials(
        self,
        link_ends: LinkEnds,
        times: Sequence[float],
        reference_link_end: LinkEndType,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Computed observations (flattened) and the matching design matrix."""
        model = self._simulator.observation_model(link_ends)
        partial = self.observation_partial(link_ends)
        size = model.size
        observations = np.zeros(len(times) * size)
        design = np.zeros((len(times) * size, self._parameter_set.total_size))
        for k, time in enumerate(times):
            value, link_end_times, link_end_states = model.compute_observation_with_link_end_data(
                time, reference_link_end,
            )
            rows = slice(k * size, (k + 1) * size)
            observations[rows] = value
            design[rows] = self._design_rows(
                partial, link_end_times, link_end_states, reference_link_end,
            )
        return observations, design

    def _design_rows(self, partial, link_end_times, link_end_states, reference_link_end) -> np.ndarray:
        rows = np.zeros((partial.size, self._parameter_set.total_size))
        for parameter, (start, size) in zip(
            self._parameter_set.parameters, self._parameter_set.indices,
        ):
            if parameter.parameter_type is EstimatableParameterType.INITIAL_BODY_STATE:
                for role, state_partial in partial.wrt_body_state(
                    parameter.associated_body, link_end_times, link_end_states, reference_link_end,
                ):
                    time = link_end_times[link_end_index(partial.observable_type, role)]
                    stm = self._state_transition_interface.state_transition_matrix(
                        parameter.associated_body, time,
                    )
                    rows[:, start:start + size] += state_partial @ stm
            else:
                rows[:, start:start + size] += partial.wrt_parameter(parameter).reshape(
                    partial.size, size,
                )
        return rows


@dataclass(frozen=True)
class EstimationConvergenceChecker:
    """Stopping rule for the least-squares iteration.

    Attributes:
        maximum_number_of_iterations: Hard iteration cap.
        minimum_residual_change: Stop when the RMS residual changes less.
        minimum_residual: Stop when the RMS residual drops below this.
        number_of_iterations_without_improvement: Stop after this many
            iterations without a new lowest RMS residual.
    """
    maximum_number_of_iterations: int = 5
    minimum_residual_change: float = 0.0
    minimum_residual: float = 1.0e-20
    number_of_iterations_without_improvement: int = 2

    def __post_init__(self) -> None:
        if self.maximum_number_of_iterations < 1:
            raise ValueError(
                "maximum_number_of_iterations must be >= 1, "
                f"got {self.maximum_number_of_iterations}"
            )
        if self.minimum_residual_change < 0.0:
            raise ValueError(
                f"minimum_residual_change must be non-negative, got {self.minimum_residual_change}"
            )
        if self.number_of_iterations_without_improvement < 1:
            raise ValueError(
                "number_of_iterations_without_improvement must be >= 1, "
                f"got {self.number_of_iterations_without_improvement}"
            )

    def is_estimation_converged(
        self,
        number_of_iterations: int,
        rms_residual_history: Sequence[float],
    ) -> bool:
        if number_of_iterations >= self.maximum_number_of_iterations:
            _log.debug("Estimation stopped: maximum of %d iterations", number_of_iterations)
            return True
        current = rms_residual_history[-1]
        if current < self.minimum_residual:
            _log.debug("Estimation converged: RMS residual %.6e below minimum", current)
            return True
        if len(rms_residual_history) > 1:
            change = abs(rms_residual_history[-2] - current)
            if change < self.minimum_residual_change:
                _log.debug("Estimation converged: RMS residual change %.6e below minimum", change)
                return True
        best_iteration = int(np.argmin(rms_residual_history))
        if len(rms_residual_history) - 1 - best_iteration >= self.number_of_iterations_without_improvement:
            _log.debug(
                "Estimation stopped: no improvement in %d iterations",
                self.number_of_iterations_without_improvement,
            )
            return True
        return False


@dataclass(frozen=True)
class EstimationInput:
    """Observations plus optional a-priori information and weights.

    Attributes:
        observation_sets: Observation sets to fit.
        inverse_apriori_covariance: Optional n x n a-priori information
            matrix, constraining the deviation from the initial values.
        convergence_checker: Stopping rule.
    """
    observation_sets: tuple[ObservationSet, ...]
    inverse_apriori_covariance: np.ndarray | None = None
    convergence_checker: EstimationConvergenceChecker = field(
        default_factory=EstimationConvergenceChecker,
    )

    def __post_init__(self) -> None:
        if not self.observation_sets:
            raise ValueError("EstimationInput needs at least one observation set")


@dataclass(frozen=True)
class EstimationOutput:
    """Result of estimate_parameters.

    unnormalized_inverse_covariance is the information matrix
    H^T W H (+ a-priori) at the best iteration; covariance is its inverse.
    """
    parameter_estimate: np.ndarray
    unnormalized_inverse_covariance: np.ndarray
    covariance: np.ndarray
    formal_errors: np.ndarray
    residuals: np.ndarray
    design_matrix: np.ndarray
    residual_history: tuple[np.ndarray, ...]
    parameter_history: tuple[np.ndarray, ...]
    rms_residual_history: tuple[float, ...]
    best_iteration: int

    @property
    def number_of_iterations(self) -> int:
        return len(self.rms_residual_history)

    @property
    def correlations(self) -> np.ndarray:
        scale = np.outer(self.formal_errors, self.formal_errors)
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(scale > 0.0, self.covariance / scale, 0.0)


class OrbitDeterminationManager:
    """Owns the parameters and one ObservationManager per observable type."""

    def __init__(
        self,
        parameter_set: EstimatableParameterSet,
        observation_simulators: Sequence[ObservationSimulator],
    ) -> None:
        self._parameter_set = parameter_set
        self._state_transition_interface = KeplerStateTransitionInterface(parameter_set)
        self._observation_managers: dict[ObservableType, ObservationManager] = {}
        for simulator in observation_simulators:
            if simulator.observable_type in self._observation_managers:
                raise ValueError(
                    f"Duplicate observation simulator for {observable_name(simulator.observable_type)}"
                )
            self._observation_managers[simulator.observable_type] = ObservationManager(
                simulator, parameter_set, self._state_transition_interface,
            )

    @property
    def parameter_set(self) -> EstimatableParameterSet:
        return self._parameter_set

    @property
    def state_transition_interface(self) -> KeplerStateTransitionInterface:
        return self._state_transition_interface

    def observation_manager(self, observable_type: ObservableType) -> ObservationManager:
        try:
            return self._observation_managers[observable_type]
        except KeyError:
            raise ValueError(
                f"No observation manager for {observable_name(observable_type)}"
            ) from None

    def compute_residuals_and_design_matrix(
        self,
        observation_sets: Sequence[ObservationSet],
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Residuals (observed - computed), design matrix and weights."""
        residuals = []
        design = []
        weights = []
        for observation_set in observation_sets:
            manager = self.observation_manager(observation_set.observable_type)
            computed, partials = manager.compute_observations_and_partials(
                observation_set.link_ends,
                observation_set.times,
                observation_set.reference_link_end,
            )
            residuals.append(observation_set.observations - computed)
            design.append(partials)
            if observation_set.weights is None:
                weights.append(np.ones(observation_set.size))
            else:
                weights.append(observation_set.weights)
        return np.concatenate(residuals), np.vstack(design), np.concatenate(weights)

    def estimate_parameters(self, estimation_input: EstimationInput) -> EstimationOutput:
        """Weighted Gauss-Newton batch least squares.

        Raises:
            ValueError: If the a-priori information matrix has the wrong shape.
        """
        n = self._parameter_set.total_size
        inverse_apriori = estimation_input.inverse_apriori_covariance
        if inverse_apriori is not None:
            inverse_apriori = np.asarray(inverse_apriori, dtype=np.float64)
            if inverse_apriori.shape != (n, n):
                raise ValueError(
                    f"Inverse a-priori covariance must be {n}x{n}, got {inverse_apriori.shape}"
                )
        checker = estimation_input.convergence_checker

        apriori_values = self._parameter_set.get_values()
        current_values = apriori_values.copy()
        residual_history: list[np.ndarray] = []
        parameter_history: list[np.ndarray] = []
        rms_history: list[float] = []
        information_history: list[np.ndarray] = []
        design_history: list[np.ndarray] = []

        iteration = 0
        while True:
            residuals, design, weights = self.compute_residuals_and_design_matrix(
                estimation_input.observation_sets,
            )
            rms = math.sqrt(float(np.mean(residuals ** 2)))
            residual_history.append(residuals)
            parameter_history.append(current_values.copy())
            rms_history.append(rms)
            design_history.append(design)

            update, information = _solve_normal_equations(
                design, residuals, weights, inverse_apriori, current_values - apriori_values,
            )
            information_history.append(information)
            iteration += 1
            _log.debug("Iteration %d: RMS residual %.6e", iteration, rms)

            current_values = current_values + update
            if checker.is_estimation_converged(iteration, rms_history):
                break
            self._parameter_set.set_values(current_values)

        best_iteration = int(np.argmin(rms_history))
        best_values = parameter_history[best_iteration]
        self._parameter_set.set_values(best_values)

        information = information_history[best_iteration]
        covariance = _invert_information(information)
        formal_errors = np.sqrt(np.clip(np.diag(covariance), 0.0, None))
        _log.debug(
            "Best iteration %d of %d, RMS residual %.6e",
            best_iteration, iteration, rms_history[best_iteration],
        )
        return EstimationOutput(
            parameter_estimate=best_values.copy(),
            unnormalized_inverse_covariance=information,
            covariance=covariance,
            formal_errors=formal_errors,
            residuals=residual_history[best_iteration],
            design_matrix=design_history[best_iteration],
            residual_history=tuple(residual_history),
            parameter_history=tuple(parameter_history),
            rms_residual_history=tuple(rms_history),
            best_iteration=best_iteration,
        )


def _column_scaling(information: np.ndarray) -> np.ndarray:
    scale = np.sqrt(np.abs(np.diag(information)))
    scale[scale == 0.0] = 1.0
    return scale


def _solve_normal_equations(
    design: np.ndarray,
    residuals: np.ndarray,
    weights: np.ndarray,
    inverse_apriori: np.ndarray | None,
    total_deviation: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Parameter update and information matrix of one Gauss-Newton step.

    (H^T W H + P0^-1) dx = H^T W r - P0^-1 (x - x0)
    """
    weighted_design = design * weights[:, np.newaxis]
    information = design.T @ weighted_design
    right_hand_side = weighted_design.T @ residuals
    if inverse_apriori is not None:
        information = information + inverse_apriori
        right_hand_side = right_hand_side - inverse_apriori @ total_deviation

    scale = _column_scaling(information)
    normalized = information / np.outer(scale, scale)
    solution, *_ = np.linalg.lstsq(normalized, right_hand_side / scale, rcond=None)
    return solution / scale, information


def _invert_information(information: np.ndarray) -> np.ndarray:
    scale = _column_scaling(information)
    normalized = information / np.outer(scale, scale)
    return np.linalg.pinv(normalized) / np.outer(scale, scale)
