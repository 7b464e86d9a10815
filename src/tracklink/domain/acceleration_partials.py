# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Analytic partial derivatives of accelerations.

An AccelerationPartial is bound to one acceleration model and follows a
small state machine: it is unusable until update(time) has been called,
update(time) with an unchanged time is a no-op, and reset_time() returns
it to the uninitialized state (also invalidating the model cache).

State partials are accumulated into caller-owned matrices:

    out[row_offset:row_offset + 3, column_offset:column_offset + 3] += multiplier * block

so a caller can assemble a full variational-equation matrix in place.
Parameter partials are returned as a 3-vector for scalar parameters and
a 3 x n matrix for vector parameters, all zeros when the acceleration
does not depend on the parameter.
"""
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from tracklink.domain.acceleration_models import (
    AccelerationType,
    AerodynamicDragAcceleration,
    CannonballRadiationPressureAcceleration,
    CentralGravityAcceleration,
    ThirdBodyCentralGravityAcceleration,
)
from tracklink.domain.estimatable_parameters import EstimatableParameter, EstimatableParameterType
from tracklink.ports import AccelerationModel

_ZERO_BLOCK = np.zeros((3, 3))


def point_mass_position_partial(relative_position: np.ndarray, mu: float) -> np.ndarray:
    """d/dr of -mu * r / |r|^3: -mu * (I - 3 r_hat r_hat^T) / |r|^3."""
    r = float(np.linalg.norm(relative_position))
    unit = relative_position / r
    return -mu * (np.eye(3) - 3.0 * np.outer(unit, unit)) / (r * r * r)


def _add_block(
    out: np.ndarray,
    block: np.ndarray,
    multiplier: float,
    row_offset: int,
    column_offset: int,
) -> None:
    out[row_offset:row_offset + 3, column_offset:column_offset + 3] += multiplier * block


def _zero_parameter_partial(parameter: EstimatableParameter) -> np.ndarray:
    if parameter.is_scalar:
        return np.zeros(3)
    return np.zeros((3, parameter.size))


class AccelerationPartial(ABC):
    """Base class: time cache, block accumulation and parameter dispatch.

    Subclasses fill the four 3x3 state blocks in _update_partials and,
    where the acceleration depends on a parameter, return its partial
    from _parameter_partial.
    """

    acceleration_type: AccelerationType

    def __init__(
        self,
        acceleration_model: AccelerationModel,
        accelerated_body: str,
        accelerating_body: str,
    ) -> None:
        self._acceleration_model = acceleration_model
        self._accelerated_body = accelerated_body
        self._accelerating_body = accelerating_body
        self._current_time: float | None = None
        self._position_partial_accelerated = _ZERO_BLOCK.copy()
        self._velocity_partial_accelerated = _ZERO_BLOCK.copy()
        self._position_partial_accelerating = _ZERO_BLOCK.copy()
        self._velocity_partial_accelerating = _ZERO_BLOCK.copy()

    @property
    def acceleration_model(self) -> AccelerationModel:
        return self._acceleration_model

    @property
    def accelerated_body(self) -> str:
        return self._accelerated_body

    @property
    def accelerating_body(self) -> str:
        return self._accelerating_body

    @property
    def current_time(self) -> float | None:
        return self._current_time

    def additional_bodies(self) -> tuple[str, ...]:
        """Bodies other than the accelerated/accelerating pair the model depends on."""
        return ()

    def update(self, time: float) -> None:
        if self._current_time is not None and time == self._current_time:
            return
        self._acceleration_model.update_members(time)
        self._update_partials()
        self._current_time = time

    def reset_time(self) -> None:
        self._current_time = None
        self._acceleration_model.reset_time()

    @abstractmethod
    def _update_partials(self) -> None:
        ...

    def _check_updated(self) -> None:
        if self._current_time is None:
            raise RuntimeError(
                f"{type(self).__name__} of '{self._accelerated_body}' by "
                f"'{self._accelerating_body}' queried before update()"
            )

    def wrt_position_of_accelerated_body(
        self, out: np.ndarray, multiplier: float = 1.0, row_offset: int = 0, column_offset: int = 0,
    ) -> None:
        self._check_updated()
        _add_block(out, self._position_partial_accelerated, multiplier, row_offset, column_offset)

    def wrt_velocity_of_accelerated_body(
        self, out: np.ndarray, multiplier: float = 1.0, row_offset: int = 0, column_offset: int = 0,
    ) -> None:
        self._check_updated()
        _add_block(out, self._velocity_partial_accelerated, multiplier, row_offset, column_offset)

    def wrt_position_of_accelerating_body(
        self, out: np.ndarray, multiplier: float = 1.0, row_offset: int = 0, column_offset: int = 0,
    ) -> None:
        self._check_updated()
        _add_block(out, self._position_partial_accelerating, multiplier, row_offset, column_offset)

    def wrt_velocity_of_accelerating_body(
        self, out: np.ndarray, multiplier: float = 1.0, row_offset: int = 0, column_offset: int = 0,
    ) -> None:
        self._check_updated()
        _add_block(out, self._velocity_partial_accelerating, multiplier, row_offset, column_offset)

    def wrt_position_of_additional_body(
        self,
        body_name: str,
        out: np.ndarray,
        multiplier: float = 1.0,
        row_offset: int = 0,
        column_offset: int = 0,
    ) -> None:
        """Accumulate the position partial w.r.t. another body (no-op if independent)."""
        self._check_updated()
        block = self._additional_position_partial(body_name)
        if block is not None:
            _add_block(out, block, multiplier, row_offset, column_offset)

    def wrt_velocity_of_additional_body(
        self,
        body_name: str,
        out: np.ndarray,
        multiplier: float = 1.0,
        row_offset: int = 0,
        column_offset: int = 0,
    ) -> None:
        self._check_updated()
        block = self._additional_velocity_partial(body_name)
        if block is not None:
            _add_block(out, block, multiplier, row_offset, column_offset)

    def _additional_position_partial(self, body_name: str) -> np.ndarray | None:
        return None

    def _additional_velocity_partial(self, body_name: str) -> np.ndarray | None:
        return None

    def wrt_parameter(self, parameter: EstimatableParameter) -> np.ndarray:
        """Partial of the acceleration w.r.t. a parameter (zeros if independent)."""
        self._check_updated()
        partial = self._parameter_partial(parameter)
        if partial is None:
            return _zero_parameter_partial(parameter)
        return partial

    def _parameter_partial(self, parameter: EstimatableParameter) -> np.ndarray | None:
        return None

    def is_parameter_dependent(self, parameter: EstimatableParameter) -> bool:
        self._check_updated()
        return self._parameter_partial(parameter) is not None


class CentralGravityPartial(AccelerationPartial):
    acceleration_type = AccelerationType.CENTRAL_GRAVITY

    def __init__(self, acceleration_model: CentralGravityAcceleration) -> None:
        super().__init__(
            acceleration_model,
            acceleration_model.accelerated_body,
            acceleration_model.accelerating_body,
        )

    def _update_partials(self) -> None:
        model = self._acceleration_model
        block = point_mass_position_partial(model.relative_position, model.gravitational_parameter)
        self._position_partial_accelerated = block
        self._position_partial_accelerating = -block

    def _parameter_partial(self, parameter):
        if parameter.parameter_type is not EstimatableParameterType.GRAVITATIONAL_PARAMETER:
            return None
        body = parameter.associated_body
        model = self._acceleration_model
        if body == self._accelerating_body or (
            model.use_mutual_attraction and body == self._accelerated_body
        ):
            r = float(np.linalg.norm(model.relative_position))
            return -model.relative_position / (r * r * r)
        return None


class ThirdBodyCentralGravityPartial(AccelerationPartial):
    """Partials of direct minus indirect third-body gravity.

    The central body enters as an additional body.
    """

    acceleration_type = AccelerationType.THIRD_BODY_CENTRAL_GRAVITY

    def __init__(self, acceleration_model: ThirdBodyCentralGravityAcceleration) -> None:
        super().__init__(
            acceleration_model,
            acceleration_model.accelerated_body,
            acceleration_model.accelerating_body,
        )
        self._central_body = acceleration_model.central_body
        self._position_partial_central = _ZERO_BLOCK.copy()

    @property
    def central_body(self) -> str:
        return self._central_body

    def additional_bodies(self) -> tuple[str, ...]:
        return (self._central_body,)

    def _update_partials(self) -> None:
        model = self._acceleration_model
        mu = model.gravitational_parameter
        direct = point_mass_position_partial(model.direct_relative_position, mu)
        indirect = point_mass_position_partial(model.central_body_relative_position, mu)
        self._position_partial_accelerated = direct
        self._position_partial_central = -indirect
        self._position_partial_accelerating = indirect - direct

    def _additional_position_partial(self, body_name):
        if body_name == self._central_body:
            return self._position_partial_central
        return None

    def _additional_velocity_partial(self, body_name):
        if body_name == self._central_body:
            return _ZERO_BLOCK
        return None

    def _parameter_partial(self, parameter):
        if (
            parameter.parameter_type is EstimatableParameterType.GRAVITATIONAL_PARAMETER
            and parameter.associated_body == self._accelerating_body
        ):
            model = self._acceleration_model
            direct = model.direct_relative_position
            indirect = model.central_body_relative_position
            r_direct = float(np.linalg.norm(direct))
            r_indirect = float(np.linalg.norm(indirect))
            return -direct / r_direct ** 3 + indirect / r_indirect ** 3
        return None


class CannonballRadiationPressurePartial(AccelerationPartial):
    """Partials of a = K * d / |d|^3 (inverse-square flux from the source)."""

    acceleration_type = AccelerationType.CANNONBALL_RADIATION_PRESSURE

    def __init__(self, acceleration_model: CannonballRadiationPressureAcceleration) -> None:
        super().__init__(
            acceleration_model,
            acceleration_model.accelerated_body,
            acceleration_model.accelerating_body,
        )

    def _update_partials(self) -> None:
        model = self._acceleration_model
        d = model.relative_position
        distance = float(np.linalg.norm(d))
        unit = d / distance
        magnitude = float(np.linalg.norm(model.acceleration))
        # K / |d|^3 == |a| / |d|
        block = magnitude / distance * (np.eye(3) - 3.0 * np.outer(unit, unit))
        self._position_partial_accelerated = block
        self._position_partial_accelerating = -block

    def _parameter_partial(self, parameter):
        if (
            parameter.parameter_type is EstimatableParameterType.RADIATION_PRESSURE_COEFFICIENT
            and parameter.associated_body == self._accelerated_body
        ):
            model = self._acceleration_model
            properties = model.properties
            d = model.relative_position
            return properties.area_m2 * model.radiation_pressure / model.mass_kg * d / np.linalg.norm(d)
        return None


class AerodynamicDragPartial(AccelerationPartial):
    """Partials of drag in a non-rotating exponential atmosphere.

    With k = 1/2 * C_D * A / m, v = v_rel and r = r_rel:
        da/dr = k * |v| * rho / H * v r_hat^T
        da/dv = -k * rho * (|v| I + v v^T / |v|)
    The central body partials are the negatives.
    """

    acceleration_type = AccelerationType.AERODYNAMIC

    def __init__(self, acceleration_model: AerodynamicDragAcceleration) -> None:
        super().__init__(
            acceleration_model,
            acceleration_model.accelerated_body,
            acceleration_model.accelerating_body,
        )

    def _update_partials(self) -> None:
        model = self._acceleration_model
        properties = model.properties
        k = 0.5 * properties.drag_coefficient * properties.reference_area_m2 / model.mass_kg
        r = model.relative_position
        v = model.relative_velocity
        speed = float(np.linalg.norm(v))
        unit_r = r / np.linalg.norm(r)
        position_block = (
            k * speed * model.density / model.atmosphere.scale_height_m * np.outer(v, unit_r)
        )
        if speed > 0.0:
            velocity_block = -k * model.density * (speed * np.eye(3) + np.outer(v, v) / speed)
        else:
            velocity_block = _ZERO_BLOCK.copy()
        self._position_partial_accelerated = position_block
        self._position_partial_accelerating = -position_block
        self._velocity_partial_accelerated = velocity_block
        self._velocity_partial_accelerating = -velocity_block

    def _parameter_partial(self, parameter):
        if (
            parameter.parameter_type is EstimatableParameterType.CONSTANT_DRAG_COEFFICIENT
            and parameter.associated_body == self._accelerated_body
        ):
            model = self._acceleration_model
            v = model.relative_velocity
            return (
                -0.5 * model.density * model.properties.reference_area_m2 / model.mass_kg
                * float(np.linalg.norm(v)) * v
            )
        return None


AccelerationPartialCreator = Callable[[AccelerationModel], AccelerationPartial]

_ACCELERATION_PARTIAL_CREATORS: dict[AccelerationType | str, AccelerationPartialCreator] = {
    AccelerationType.CENTRAL_GRAVITY: CentralGravityPartial,
    AccelerationType.THIRD_BODY_CENTRAL_GRAVITY: ThirdBodyCentralGravityPartial,
    AccelerationType.CANNONBALL_RADIATION_PRESSURE: CannonballRadiationPressurePartial,
    AccelerationType.AERODYNAMIC: AerodynamicDragPartial,
}


def register_acceleration_partial_creator(
    acceleration_type: AccelerationType | str,
    creator: AccelerationPartialCreator,
) -> None:
    """Register the partial creator for an acceleration type.

    Models of new kinds carry their own tag (a string is fine) in their
    acceleration_type attribute. Registering an existing type replaces
    its creator.
    """
    _ACCELERATION_PARTIAL_CREATORS[acceleration_type] = creator


def create_acceleration_partial(acceleration_model: AccelerationModel) -> AccelerationPartial:
    """Create the analytic partial for an acceleration model.

    Raises:
        ValueError: If no partial is registered for the model's type.
    """
    acceleration_type = getattr(acceleration_model, "acceleration_type", None)
    creator = _ACCELERATION_PARTIAL_CREATORS.get(acceleration_type)
    if creator is None:
        raise ValueError(
            f"Acceleration model type not recognized when making acceleration partial: "
            f"{type(acceleration_model).__name__}"
        )
    return creator(acceleration_model)
