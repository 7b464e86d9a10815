# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Central-difference partials used to verify the analytic ones.

Every function perturbs a body state, a parameter value or a body
ephemeris, re-evaluates the model and restores the original value before
returning, also when the evaluation raises.
"""
from typing import Callable

import numpy as np

from tracklink.domain.bodies import Body
from tracklink.domain.estimatable_parameters import EstimatableParameter
from tracklink.domain.link_ends import LinkEndType
from tracklink.ports import AccelerationModel, StateProvider

UpdateFunction = Callable[[float], None]


def _evaluate_acceleration(
    acceleration_model: AccelerationModel,
    time: float,
    update_function: UpdateFunction | None,
) -> np.ndarray:
    if update_function is not None:
        update_function(time)
    acceleration_model.reset_time()
    acceleration_model.update_members(time)
    return acceleration_model.acceleration


def calculate_acceleration_wrt_state_partials(
    body: Body,
    acceleration_model: AccelerationModel,
    time: float,
    state_perturbation,
    start_index: int = 0,
    update_function: UpdateFunction | None = None,
) -> np.ndarray:
    """3x3 partial of an acceleration w.r.t. three state entries of a body.

    Args:
        body: Body whose current state is perturbed.
        acceleration_model: Model to re-evaluate.
        time: Evaluation time (s).
        state_perturbation: Perturbation per component (scalar or 3 values).
        start_index: 0 for the position block, 3 for the velocity block.
        update_function: Called with time after each state change, for
            environment updates the model depends on.
    """
    perturbations = np.broadcast_to(np.asarray(state_perturbation, dtype=np.float64), (3,))
    original_state = body.state
    partial = np.zeros((3, 3))
    try:
        for i in range(3):
            index = start_index + i
            perturbed = original_state.copy()
            perturbed[index] += perturbations[i]
            body.set_state(perturbed)
            up = _evaluate_acceleration(acceleration_model, time, update_function)

            perturbed = original_state.copy()
            perturbed[index] -= perturbations[i]
            body.set_state(perturbed)
            down = _evaluate_acceleration(acceleration_model, time, update_function)

            partial[:, i] = (up - down) / (2.0 * perturbations[i])
    finally:
        body.set_state(original_state)
        _evaluate_acceleration(acceleration_model, time, update_function)
    return partial


def calculate_acceleration_wrt_parameter_partials(
    parameter: EstimatableParameter,
    acceleration_model: AccelerationModel,
    time: float,
    parameter_perturbation,
    update_function: UpdateFunction | None = None,
) -> np.ndarray:
    """Partial of an acceleration w.r.t. a parameter (3-vector or 3 x n)."""
    original_value = parameter.get_current_value()
    if parameter.is_scalar:
        perturbation = float(parameter_perturbation)
        try:
            parameter.set_current_value(original_value + perturbation)
            up = _evaluate_acceleration(acceleration_model, time, update_function)
            parameter.set_current_value(original_value - perturbation)
            down = _evaluate_acceleration(acceleration_model, time, update_function)
        finally:
            parameter.set_current_value(original_value)
            _evaluate_acceleration(acceleration_model, time, update_function)
        return (up - down) / (2.0 * perturbation)

    original_value = np.asarray(original_value, dtype=np.float64)
    perturbations = np.broadcast_to(
        np.asarray(parameter_perturbation, dtype=np.float64), original_value.shape,
    )
    partial = np.zeros((3, original_value.shape[0]))
    try:
        for i in range(original_value.shape[0]):
            value = original_value.copy()
            value[i] += perturbations[i]
            parameter.set_current_value(value)
            up = _evaluate_acceleration(acceleration_model, time, update_function)
            value = original_value.copy()
            value[i] -= perturbations[i]
            parameter.set_current_value(value)
            down = _evaluate_acceleration(acceleration_model, time, update_function)
            partial[:, i] = (up - down) / (2.0 * perturbations[i])
    finally:
        parameter.set_current_value(original_value)
        _evaluate_acceleration(acceleration_model, time, update_function)
    return partial


class _OffsetEphemeris:
    """Ephemeris shifted by a constant state offset."""

    def __init__(self, ephemeris: StateProvider, offset: np.ndarray) -> None:
        self._ephemeris = ephemeris
        self._offset = offset

    def cartesian_state(self, time: float) -> np.ndarray:
        return np.asarray(self._ephemeris.cartesian_state(time), dtype=np.float64) + self._offset


def calculate_observation_wrt_body_state_partials(
    observation_model,
    body: Body,
    time: float,
    link_end_associated_with_time: LinkEndType,
    state_perturbation,
) -> np.ndarray:
    """N x 6 partial of an ideal observable w.r.t. a link-end body's state.

    The body's ephemeris is shifted by a constant offset in each state
    entry, so light-time effects of the perturbation are included.
    """
    perturbations = np.broadcast_to(np.asarray(state_perturbation, dtype=np.float64), (6,))
    original_ephemeris = body.ephemeris
    if original_ephemeris is None:
        raise ValueError(f"Body '{body.name}' has no ephemeris to perturb")
    partial = np.zeros((observation_model.size, 6))
    try:
        for i in range(6):
            offset = np.zeros(6)
            offset[i] = perturbations[i]
            body.ephemeris = _OffsetEphemeris(original_ephemeris, offset)
            up = observation_model.compute_ideal_observation(time, link_end_associated_with_time)
            body.ephemeris = _OffsetEphemeris(original_ephemeris, -offset)
            down = observation_model.compute_ideal_observation(time, link_end_associated_with_time)
            partial[:, i] = (
                np.asarray(up, dtype=np.float64) - np.asarray(down, dtype=np.float64)
            ) / (2.0 * perturbations[i])
    finally:
        body.ephemeris = original_ephemeris
    return partial
