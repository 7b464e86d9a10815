# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Observation models: one-way range, one-way Doppler, angular position and
Cartesian position.

Each model maps a time at one link end to an observable of fixed size,
resolving link-end times and states through a LightTimeCalculator
(except position, which needs no signal path). The observed value is the
ideal value plus the optional bias.
"""
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from tracklink.domain.light_time import LightTimeCalculator, LightTimeSolution
from tracklink.domain.link_ends import LinkEndType, ObservableType, observable_size
from tracklink.domain.physical_constants import PhysicalConstants
from tracklink.ports import ObservationBias

LinkEndData = tuple[np.ndarray, tuple[float, ...], tuple[np.ndarray, ...]]


def line_of_sight_velocity_fraction(unit_vector: np.ndarray, velocity: np.ndarray):
    """Velocity component along a unit vector, divided by the speed of light."""
    c = unit_vector.dtype.type(PhysicalConstants.SPEED_OF_LIGHT)
    return np.dot(unit_vector, velocity) / c


def compute_one_way_doppler_taylor_expansion(
    transmitter_state: np.ndarray,
    receiver_state: np.ndarray,
    taylor_series_order: int = 3,
):
    """First-order one-way Doppler term (dt_T/dt_R - 1).

    Light-time and proper-time rate corrections are not included. The
    1 / (1 - beta_R) denominator is replaced by its Taylor series
    truncated at the given order:

        u = (r_R - r_T) / |r_R - r_T|
        beta_T = u . v_T / c,   beta_R = u . v_R / c
        S = sum_{i=1..k} beta_R^i
        D = -beta_T + S * (1 - beta_T)

    The computation runs in the dtype of the input states.
    """
    relative = receiver_state[:3] - transmitter_state[:3]
    unit = relative / np.sqrt(np.dot(relative, relative))
    transmitter_term = line_of_sight_velocity_fraction(unit, transmitter_state[3:])
    receiver_term = line_of_sight_velocity_fraction(unit, receiver_state[3:])

    one = unit.dtype.type(1)
    term = one
    series = unit.dtype.type(0)
    for _ in range(taylor_series_order):
        term = term * receiver_term
        series = series + term

    return -transmitter_term + series * (one - transmitter_term)


def compute_right_ascension_and_declination(relative_position: np.ndarray) -> np.ndarray:
    """[right ascension, declination] (rad) of a relative position vector."""
    x, y, z = relative_position[0], relative_position[1], relative_position[2]
    distance = np.sqrt(np.dot(relative_position, relative_position))
    return np.array([np.arctan2(y, x), np.arcsin(z / distance)], dtype=relative_position.dtype)


class ObservationModel(ABC):
    """Shared evaluation flow for all observation models.

    Subclasses set observable_type and implement
    compute_ideal_observation_with_link_end_data.
    """

    observable_type: ObservableType

    def __init__(self, observation_bias: ObservationBias | None = None) -> None:
        size = observable_size(self.observable_type)
        if observation_bias is not None and observation_bias.size != size:
            raise ValueError(
                f"Observation bias size {observation_bias.size} is inconsistent with "
                f"observable size {size}"
            )
        self._observation_bias = observation_bias

    @property
    def size(self) -> int:
        return observable_size(self.observable_type)

    @property
    def observation_bias(self) -> ObservationBias | None:
        return self._observation_bias

    @abstractmethod
    def compute_ideal_observation_with_link_end_data(
        self,
        time: float,
        link_end_associated_with_time: LinkEndType,
    ) -> LinkEndData:
        """Ideal observable plus the link-end times and float64 states used."""
        ...

    def compute_ideal_observation(
        self,
        time: float,
        link_end_associated_with_time: LinkEndType,
    ) -> np.ndarray:
        """Ideal observable, without biases."""
        return self.compute_ideal_observation_with_link_end_data(
            time, link_end_associated_with_time,
        )[0]

    def compute_observation_with_link_end_data(
        self,
        time: float,
        link_end_associated_with_time: LinkEndType,
    ) -> LinkEndData:
        """Biased observable plus the link-end times and states used."""
        ideal, times, states = self.compute_ideal_observation_with_link_end_data(
            time, link_end_associated_with_time,
        )
        if self._observation_bias is None:
            return ideal, times, states
        return self._observation_bias.apply(ideal, times, states), times, states

    def compute_observation(
        self,
        time: float,
        link_end_associated_with_time: LinkEndType,
    ) -> np.ndarray:
        """Biased observable: the simulated measurement."""
        return self.compute_observation_with_link_end_data(
            time, link_end_associated_with_time,
        )[0]


class _LightTimeObservationModel(ObservationModel):
    """Observation model whose link ends are a transmitter and a receiver."""

    def __init__(
        self,
        light_time_calculator: LightTimeCalculator,
        observation_bias: ObservationBias | None = None,
    ) -> None:
        super().__init__(observation_bias)
        self._light_time_calculator = light_time_calculator

    @property
    def light_time_calculator(self) -> LightTimeCalculator:
        return self._light_time_calculator

    def _solve_light_time(
        self,
        time: float,
        link_end_associated_with_time: LinkEndType,
    ) -> LightTimeSolution:
        if link_end_associated_with_time is LinkEndType.RECEIVER:
            is_time_at_reception = True
        elif link_end_associated_with_time is LinkEndType.TRANSMITTER:
            is_time_at_reception = False
        else:
            raise ValueError(
                f"Error when calculating {self.observable_type.value} observation, "
                f"link end {link_end_associated_with_time} is not transmitter or receiver"
            )
        return self._light_time_calculator.calculate_light_time_with_link_end_states(
            time, is_time_at_reception,
        )

    @staticmethod
    def _link_end_data(solution: LightTimeSolution):
        times = (float(solution.transmission_time), float(solution.reception_time))
        states = (
            np.array(solution.transmitter_state, dtype=np.float64),
            np.array(solution.receiver_state, dtype=np.float64),
        )
        return times, states


class OneWayRangeObservationModel(_LightTimeObservationModel):
    """One-way range: c times the (corrected) light time."""

    observable_type = ObservableType.ONE_WAY_RANGE

    def compute_ideal_observation_with_link_end_data(self, time, link_end_associated_with_time):
        solution = self._solve_light_time(time, link_end_associated_with_time)
        st = self._light_time_calculator.scalar_type
        observation = np.array(
            [solution.light_time * st(PhysicalConstants.SPEED_OF_LIGHT)], dtype=st,
        )
        times, states = self._link_end_data(solution)
        return observation, times, states


class SimplifiedOneWayDopplerObservationModel(_LightTimeObservationModel):
    """Simplified one-way Doppler, d f_R / d f_T - 1.

    Proper-time rates and light-time rate corrections are deliberately
    omitted; the observable is the first-order Taylor-expanded term of
    compute_one_way_doppler_taylor_expansion.
    """

    observable_type = ObservableType.ONE_WAY_DOPPLER

    def __init__(
        self,
        light_time_calculator: LightTimeCalculator,
        observation_bias: ObservationBias | None = None,
        taylor_series_order: int = 3,
    ) -> None:
        super().__init__(light_time_calculator, observation_bias)
        if taylor_series_order < 1:
            raise ValueError(f"taylor_series_order must be >= 1, got {taylor_series_order}")
        self._taylor_series_order = taylor_series_order

    @property
    def taylor_series_order(self) -> int:
        return self._taylor_series_order

    def compute_ideal_observation_with_link_end_data(self, time, link_end_associated_with_time):
        solution = self._solve_light_time(time, link_end_associated_with_time)
        doppler = compute_one_way_doppler_taylor_expansion(
            solution.transmitter_state, solution.receiver_state, self._taylor_series_order,
        )
        observation = np.array([doppler], dtype=self._light_time_calculator.scalar_type)
        times, states = self._link_end_data(solution)
        return observation, times, states


class AngularPositionObservationModel(_LightTimeObservationModel):
    """Right ascension and declination of the transmitter seen from the receiver.

    Angles are measured in the inertial frame of the state functions.
    """

    observable_type = ObservableType.ANGULAR_POSITION

    def compute_ideal_observation_with_link_end_data(self, time, link_end_associated_with_time):
        solution = self._solve_light_time(time, link_end_associated_with_time)
        relative = solution.transmitter_state[:3] - solution.receiver_state[:3]
        observation = compute_right_ascension_and_declination(relative)
        times, states = self._link_end_data(solution)
        return observation, times, states


class PositionObservationModel(ObservationModel):
    """Cartesian position of the observed body, no signal path."""

    observable_type = ObservableType.POSITION_OBSERVABLE

    def __init__(
        self,
        state_function: Callable[[float], np.ndarray],
        observation_bias: ObservationBias | None = None,
    ) -> None:
        super().__init__(observation_bias)
        self._state_function = state_function

    def compute_ideal_observation_with_link_end_data(self, time, link_end_associated_with_time):
        if link_end_associated_with_time is not LinkEndType.OBSERVED_BODY:
            raise ValueError(
                "Error when calculating position observation, link end "
                f"{link_end_associated_with_time} is not observed_body"
            )
        state = np.asarray(self._state_function(time), dtype=np.float64)
        return state[:3].copy(), (float(time),), (state,)
