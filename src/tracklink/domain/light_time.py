# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Light-time solution between two moving link ends.

Solves tau = |r_R(t_R) - r_T(t_T)| / c + corrections with one of the two
times held fixed, by fixed-point iteration on tau. Corrections are an
explicit ordered list of callables (empty by default).

The scalar type is a parameter: np.float64 by default, np.longdouble
for extended precision. States, times and the speed of light are cast
to it; values are cast to float only for log messages.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

import numpy as np

from tracklink.domain.physical_constants import PhysicalConstants
from tracklink.ports import LightTimeCorrection

_log = logging.getLogger(__name__)

StateFunction = Callable[[float], np.ndarray]


class LightTimeFailureHandling(Enum):
    ACCEPT_WITHOUT_WARNING = "accept_without_warning"
    WARN_AND_ACCEPT = "warn_and_accept"
    RAISE = "raise"


class LightTimeConvergenceError(RuntimeError):
    """Light-time iteration hit its iteration cap without converging."""


@dataclass(frozen=True)
class LightTimeConvergenceCriteria:
    """Iteration settings for the light-time solution.

    Attributes:
        tolerance_s: Convergence threshold on successive light times.
            None selects 1e-12 s for double precision and 1e-15 s for
            scalar types with a finer resolution.
        max_iterations: Iteration cap.
        iterate_corrections: Recompute corrections on every iteration.
            When False they are computed once, held during the geometric
            iteration, and refreshed once after it converges.
        failure_handling: What to do when the cap is reached.
    """
    tolerance_s: float | None = None
    max_iterations: int = 50
    iterate_corrections: bool = False
    failure_handling: LightTimeFailureHandling = LightTimeFailureHandling.WARN_AND_ACCEPT

    def __post_init__(self) -> None:
        if self.tolerance_s is not None and self.tolerance_s <= 0.0:
            raise ValueError(f"tolerance_s must be positive, got {self.tolerance_s}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")


def default_light_time_tolerance(scalar_type: type = np.float64) -> float:
    """Default light-time tolerance (s) for a scalar type."""
    if np.finfo(scalar_type).eps < np.finfo(np.float64).eps:
        return 1e-15
    return 1e-12


@dataclass(frozen=True)
class LightTimeSolution:
    """Result of one light-time solution.

    States are in the calculator's scalar type. When converged is False
    the remaining fields hold the best available estimate.
    """
    light_time: float
    transmitter_state: np.ndarray
    receiver_state: np.ndarray
    transmission_time: float
    reception_time: float
    iterations: int
    converged: bool


class LightTimeCalculator:
    """Iterative light-time solver for one transmitter/receiver pair.

    Holds configuration only; every call is independent of the previous.
    """

    def __init__(
        self,
        transmitter_state_function: StateFunction,
        receiver_state_function: StateFunction,
        corrections: Sequence[LightTimeCorrection] = (),
        convergence_criteria: LightTimeConvergenceCriteria | None = None,
        scalar_type: type = np.float64,
    ) -> None:
        self._transmitter_state_function = transmitter_state_function
        self._receiver_state_function = receiver_state_function
        self._corrections = tuple(corrections)
        self._criteria = convergence_criteria or LightTimeConvergenceCriteria()
        self._scalar_type = scalar_type
        tolerance = self._criteria.tolerance_s
        if tolerance is None:
            tolerance = default_light_time_tolerance(scalar_type)
        self._tolerance = scalar_type(tolerance)
        self._speed_of_light = scalar_type(PhysicalConstants.SPEED_OF_LIGHT)

    @property
    def corrections(self) -> tuple[LightTimeCorrection, ...]:
        return self._corrections

    @property
    def convergence_criteria(self) -> LightTimeConvergenceCriteria:
        return self._criteria

    @property
    def scalar_type(self) -> type:
        return self._scalar_type

    def _transmitter_state(self, time) -> np.ndarray:
        return np.array(self._transmitter_state_function(time), dtype=self._scalar_type)

    def _receiver_state(self, time) -> np.ndarray:
        return np.array(self._receiver_state_function(time), dtype=self._scalar_type)

    def _total_correction(self, transmitter_state, receiver_state, transmission_time, reception_time):
        total = self._scalar_type(0)
        for correction in self._corrections:
            total += self._scalar_type(correction(
                transmitter_state, receiver_state, transmission_time, reception_time,
            ))
        return total

    def _geometric_light_time(self, transmitter_state, receiver_state):
        relative = receiver_state[:3] - transmitter_state[:3]
        return np.sqrt(np.dot(relative, relative)) / self._speed_of_light

    def calculate_light_time(self, time: float, is_time_at_reception: bool = True) -> float:
        """Light time (s) with the given link-end time held fixed."""
        return self.calculate_light_time_with_link_end_states(time, is_time_at_reception).light_time

    def calculate_light_time_with_link_end_states(
        self,
        time: float,
        is_time_at_reception: bool = True,
    ) -> LightTimeSolution:
        """Solve the light-time equation with one link-end time fixed.

        Args:
            time: Fixed time (s): reception time if is_time_at_reception,
                transmission time otherwise.
            is_time_at_reception: Which link end's time is held fixed.

        Returns:
            LightTimeSolution with the light time, both link-end states at
            their respective times, and convergence information.

        Raises:
            LightTimeConvergenceError: If the iteration cap is reached and
                failure handling is RAISE.
        """
        st = self._scalar_type
        time = st(time)
        transmission_time = time
        reception_time = time

        transmitter_state = self._transmitter_state(time)
        receiver_state = self._receiver_state(time)

        correction = self._total_correction(
            transmitter_state, receiver_state, transmission_time, reception_time,
        )
        light_time = self._geometric_light_time(transmitter_state, receiver_state) + correction

        iterate_corrections = self._criteria.iterate_corrections
        corrections_refreshed = iterate_corrections or not self._corrections
        converged = False
        iterations = 0

        while iterations < self._criteria.max_iterations:
            if is_time_at_reception:
                transmission_time = time - light_time
                transmitter_state = self._transmitter_state(transmission_time)
            else:
                reception_time = time + light_time
                receiver_state = self._receiver_state(reception_time)

            if iterate_corrections:
                correction = self._total_correction(
                    transmitter_state, receiver_state, transmission_time, reception_time,
                )

            geometric = self._geometric_light_time(transmitter_state, receiver_state)
            new_light_time = geometric + correction
            iterations += 1

            if abs(new_light_time - light_time) < self._tolerance:
                if corrections_refreshed:
                    light_time = new_light_time
                    converged = True
                    break
                corrections_refreshed = True
                refreshed = self._total_correction(
                    transmitter_state, receiver_state, transmission_time, reception_time,
                )
                new_light_time = geometric + refreshed
                changed = abs(refreshed - correction) >= self._tolerance
                correction = refreshed
                light_time = new_light_time
                if not changed:
                    converged = True
                    break
                continue

            light_time = new_light_time

        if not converged:
            self._handle_non_convergence(time, light_time, is_time_at_reception)

        # Evaluate the non-fixed end at the final light time.
        if is_time_at_reception:
            transmission_time = time - light_time
            transmitter_state = self._transmitter_state(transmission_time)
        else:
            reception_time = time + light_time
            receiver_state = self._receiver_state(reception_time)

        return LightTimeSolution(
            light_time=light_time,
            transmitter_state=transmitter_state,
            receiver_state=receiver_state,
            transmission_time=transmission_time,
            reception_time=reception_time,
            iterations=iterations,
            converged=converged,
        )

    def _handle_non_convergence(self, time, light_time, is_time_at_reception: bool) -> None:
        handling = self._criteria.failure_handling
        message = (
            "Light-time iteration did not converge within %d iterations "
            "(fixed %s time %.6f s, best light time %.15g s)"
        )
        args = (
            self._criteria.max_iterations,
            "reception" if is_time_at_reception else "transmission",
            float(time),
            float(light_time),
        )
        if handling is LightTimeFailureHandling.RAISE:
            raise LightTimeConvergenceError(message % args)
        if handling is LightTimeFailureHandling.WARN_AND_ACCEPT:
            _log.warning(message, *args)


class FirstOrderRelativisticCorrection:
    """First-order relativistic (Shapiro) light-time delay.

    delay = (1 + gamma) * sum_k mu_k / c^3 * ln((r_T + r_R + r_TR) / (r_T + r_R - r_TR))

    with r_T, r_R the distances of transmitter and receiver from
    perturbing body k, evaluated at the signal mid-point time.
    """

    def __init__(
        self,
        perturbing_bodies: Sequence[tuple[float, StateFunction]],
        ppn_gamma: float = 1.0,
    ) -> None:
        if not perturbing_bodies:
            raise ValueError("At least one perturbing body is required")
        self._perturbing_bodies = tuple(perturbing_bodies)
        self._ppn_gamma = ppn_gamma

    def __call__(
        self,
        transmitter_state: np.ndarray,
        receiver_state: np.ndarray,
        transmission_time: float,
        reception_time: float,
    ) -> float:
        c = PhysicalConstants.SPEED_OF_LIGHT
        r_t = np.asarray(transmitter_state[:3], dtype=np.float64)
        r_r = np.asarray(receiver_state[:3], dtype=np.float64)
        link_distance = float(np.linalg.norm(r_r - r_t))
        mid_time = 0.5 * (float(transmission_time) + float(reception_time))

        delay = 0.0
        for mu, state_function in self._perturbing_bodies:
            body_position = np.asarray(state_function(mid_time), dtype=np.float64)[:3]
            d_t = float(np.linalg.norm(r_t - body_position))
            d_r = float(np.linalg.norm(r_r - body_position))
            delay += mu / c**3 * math.log(
                (d_t + d_r + link_distance) / (d_t + d_r - link_distance)
            )
        return (1.0 + self._ppn_gamma) * delay
