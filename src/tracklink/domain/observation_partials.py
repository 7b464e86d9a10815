# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Analytic partial derivatives of observables.

Partials are evaluated from the link-end times and states an observation
model returns with its observable, so no light-time solution is repeated.
The partial w.r.t. a link end is an N x 6 matrix (position columns, then
velocity columns) for an observable of size N.

Range and angular position partials include the light-time scaling that
follows from the time at the other link end moving with the geometry.
Doppler partials hold the link-end times fixed.
"""
from abc import ABC, abstractmethod
from typing import Callable, Sequence

import numpy as np

from tracklink.domain.estimatable_parameters import EstimatableParameter, EstimatableParameterType
from tracklink.domain.link_ends import (
    LinkEnds,
    LinkEndType,
    ObservableType,
    link_end_index,
    observable_size,
)
from tracklink.domain.physical_constants import PhysicalConstants

_C = PhysicalConstants.SPEED_OF_LIGHT


def _free_link_end(link_end_associated_with_time: LinkEndType) -> LinkEndType:
    """The link end whose time follows from the light time."""
    if link_end_associated_with_time is LinkEndType.RECEIVER:
        return LinkEndType.TRANSMITTER
    if link_end_associated_with_time is LinkEndType.TRANSMITTER:
        return LinkEndType.RECEIVER
    raise ValueError(
        f"Link end {link_end_associated_with_time} is not transmitter or receiver"
    )


def _line_of_sight(link_end_states: Sequence[np.ndarray]) -> tuple[np.ndarray, float]:
    """Unit vector transmitter -> receiver and the distance."""
    relative = link_end_states[1][:3] - link_end_states[0][:3]
    distance = float(np.linalg.norm(relative))
    return relative / distance, distance


def light_time_scaling(
    unit_vector: np.ndarray,
    free_link_end_velocity: np.ndarray,
) -> float:
    """1 / (1 - u . v / c): d(c tau) per unit of line-of-sight displacement."""
    return 1.0 / (1.0 - float(np.dot(unit_vector, free_link_end_velocity)) / _C)


class ObservationPartial(ABC):
    """Partials of one observable for one set of link ends."""

    observable_type: ObservableType

    def __init__(self, link_ends: LinkEnds) -> None:
        self._link_ends = link_ends

    @property
    def link_ends(self) -> LinkEnds:
        return self._link_ends

    @property
    def size(self) -> int:
        return observable_size(self.observable_type)

    def wrt_link_end_state(
        self,
        link_end_type: LinkEndType,
        link_end_times: Sequence[float],
        link_end_states: Sequence[np.ndarray],
        link_end_associated_with_time: LinkEndType,
    ) -> np.ndarray:
        """N x 6 partial w.r.t. the state of one link end."""
        if link_end_type not in self._link_ends:
            raise ValueError(
                f"Link end {link_end_type} is not part of {self._link_ends}"
            )
        return self._state_partial(
            link_end_type, link_end_times, link_end_states, link_end_associated_with_time,
        )

    def wrt_body_state(
        self,
        body_name: str,
        link_end_times: Sequence[float],
        link_end_states: Sequence[np.ndarray],
        link_end_associated_with_time: LinkEndType,
    ) -> list[tuple[LinkEndType, np.ndarray]]:
        """Partials w.r.t. every link end located on a body, with their roles."""
        return [
            (role, self.wrt_link_end_state(
                role, link_end_times, link_end_states, link_end_associated_with_time,
            ))
            for role, link_end in self._link_ends.items()
            if link_end.body_name == body_name
        ]

    @abstractmethod
    def _state_partial(self, link_end_type, link_end_times, link_end_states, link_end_associated_with_time):
        ...

    def wrt_parameter(self, parameter: EstimatableParameter) -> np.ndarray:
        """N x n partial w.r.t. a non-state parameter (zeros if independent).

        Only the constant additive bias of this observable and these link
        ends enters the observation directly.
        """
        if (
            parameter.parameter_type is EstimatableParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS
            and parameter.observable_type is self.observable_type
            and parameter.link_ends == self._link_ends
        ):
            return np.eye(self.size)
        return np.zeros((self.size, parameter.size))


class OneWayRangePartial(ObservationPartial):
    observable_type = ObservableType.ONE_WAY_RANGE

    def _state_partial(self, link_end_type, link_end_times, link_end_states, link_end_associated_with_time):
        unit, _ = _line_of_sight(link_end_states)
        free = _free_link_end(link_end_associated_with_time)
        free_velocity = link_end_states[link_end_index(self.observable_type, free)][3:]
        position_partial = unit * light_time_scaling(unit, free_velocity)
        if link_end_type is LinkEndType.TRANSMITTER:
            position_partial = -position_partial
        partial = np.zeros((1, 6))
        partial[0, :3] = position_partial
        return partial


class OneWayDopplerPartial(ObservationPartial):
    """Partials of D = -beta_T + S (1 - beta_T), S = sum_{i=1..k} beta_R^i."""

    observable_type = ObservableType.ONE_WAY_DOPPLER

    def __init__(self, link_ends: LinkEnds, taylor_series_order: int = 3) -> None:
        super().__init__(link_ends)
        if taylor_series_order < 1:
            raise ValueError(f"taylor_series_order must be >= 1, got {taylor_series_order}")
        self._taylor_series_order = taylor_series_order

    def _state_partial(self, link_end_type, link_end_times, link_end_states, link_end_associated_with_time):
        transmitter_state, receiver_state = link_end_states[0], link_end_states[1]
        unit, distance = _line_of_sight(link_end_states)
        beta_t = float(np.dot(unit, transmitter_state[3:])) / _C
        beta_r = float(np.dot(unit, receiver_state[3:])) / _C

        series = 0.0
        series_derivative = 0.0
        for i in range(1, self._taylor_series_order + 1):
            series += beta_r ** i
            series_derivative += i * beta_r ** (i - 1)
        d_doppler_d_beta_t = -1.0 - series
        d_doppler_d_beta_r = series_derivative * (1.0 - beta_t)

        # d(beta_X)/d(r_R) = v_X^T (I - u u^T) / (|d| c)
        projection = np.eye(3) - np.outer(unit, unit)
        weighted_velocity = (
            d_doppler_d_beta_t * transmitter_state[3:] + d_doppler_d_beta_r * receiver_state[3:]
        )
        receiver_position_partial = projection @ weighted_velocity / (distance * _C)

        partial = np.zeros((1, 6))
        if link_end_type is LinkEndType.RECEIVER:
            partial[0, :3] = receiver_position_partial
            partial[0, 3:] = d_doppler_d_beta_r * unit / _C
        else:
            partial[0, :3] = -receiver_position_partial
            partial[0, 3:] = d_doppler_d_beta_t * unit / _C
        return partial


class AngularPositionPartial(ObservationPartial):
    """Partials of [RA, dec] of r = r_T - r_R.

    d(RA, dec)/dr is scaled by M = I + v u^T / (c (1 - u . v / c)), v the
    velocity of the free link end; the transmitter block is +J M and the
    receiver block -J M.
    """

    observable_type = ObservableType.ANGULAR_POSITION

    def _state_partial(self, link_end_type, link_end_times, link_end_states, link_end_associated_with_time):
        relative = link_end_states[0][:3] - link_end_states[1][:3]
        x, y, z = relative
        xy_squared = x * x + y * y
        xy = np.sqrt(xy_squared)
        r_squared = xy_squared + z * z
        jacobian = np.array([
            [-y / xy_squared, x / xy_squared, 0.0],
            [-x * z / (r_squared * xy), -y * z / (r_squared * xy), xy / r_squared],
        ])

        unit, _ = _line_of_sight(link_end_states)
        free = _free_link_end(link_end_associated_with_time)
        free_velocity = link_end_states[link_end_index(self.observable_type, free)][3:]
        scaling = np.eye(3) + np.outer(free_velocity, unit) * light_time_scaling(unit, free_velocity) / _C

        position_partial = jacobian @ scaling
        if link_end_type is LinkEndType.RECEIVER:
            position_partial = -position_partial
        partial = np.zeros((2, 6))
        partial[:, :3] = position_partial
        return partial


class PositionObservablePartial(ObservationPartial):
    observable_type = ObservableType.POSITION_OBSERVABLE

    def _state_partial(self, link_end_type, link_end_times, link_end_states, link_end_associated_with_time):
        partial = np.zeros((3, 6))
        partial[:, :3] = np.eye(3)
        return partial


ObservationPartialCreator = Callable[..., ObservationPartial]

_OBSERVATION_PARTIAL_CREATORS: dict[ObservableType, ObservationPartialCreator] = {
    ObservableType.ONE_WAY_RANGE: OneWayRangePartial,
    ObservableType.ONE_WAY_DOPPLER: OneWayDopplerPartial,
    ObservableType.ANGULAR_POSITION: AngularPositionPartial,
    ObservableType.POSITION_OBSERVABLE: PositionObservablePartial,
}


def create_observation_partial(
    observable_type: ObservableType,
    link_ends: LinkEnds,
    taylor_series_order: int = 3,
) -> ObservationPartial:
    """Create the analytic partial of an observable for a set of link ends.

    Raises:
        ValueError: For an observable without registered partials.
    """
    creator = _OBSERVATION_PARTIAL_CREATORS.get(observable_type)
    if creator is None:
        raise ValueError(f"No observation partial for {observable_type!r}")
    if observable_type is ObservableType.ONE_WAY_DOPPLER:
        return creator(link_ends, taylor_series_order)
    return creator(link_ends)
