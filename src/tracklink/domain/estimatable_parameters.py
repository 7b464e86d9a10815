# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Estimatable parameters.

A parameter reads and writes a value owned by a body (gravitational
parameter, drag or radiation pressure coefficient, initial state) or by an
observation bias. Scalar parameters use floats, vector parameters numpy
arrays. EstimatableParameterSet concatenates the values of a list of
parameters into one vector and scatters a vector back.
"""
from abc import ABC, abstractmethod
from enum import Enum

import numpy as np

from tracklink.domain.bodies import BodyMap
from tracklink.domain.ephemerides import KeplerEphemeris
from tracklink.domain.link_ends import LinkEnds, ObservableType, observable_name
from tracklink.domain.observation_bias import ConstantObservationBias


class EstimatableParameterType(Enum):
    GRAVITATIONAL_PARAMETER = "gravitational_parameter"
    CONSTANT_DRAG_COEFFICIENT = "constant_drag_coefficient"
    RADIATION_PRESSURE_COEFFICIENT = "radiation_pressure_coefficient"
    CONSTANT_ADDITIVE_OBSERVATION_BIAS = "constant_additive_observation_bias"
    INITIAL_BODY_STATE = "initial_body_state"


class EstimatableParameter(ABC):
    """Typed handle on an estimatable value.

    Subclasses set parameter_type and implement get/set_current_value.
    """

    parameter_type: EstimatableParameterType

    def __init__(self, associated_body: str) -> None:
        self._associated_body = associated_body

    @property
    def associated_body(self) -> str:
        return self._associated_body

    @property
    def size(self) -> int:
        return 1

    @property
    def is_scalar(self) -> bool:
        return self.size == 1

    @abstractmethod
    def get_current_value(self):
        ...

    @abstractmethod
    def set_current_value(self, value) -> None:
        ...

    def description(self) -> str:
        return f"{self.parameter_type.value} of {self._associated_body}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description()!r})"


class GravitationalParameter(EstimatableParameter):
    parameter_type = EstimatableParameterType.GRAVITATIONAL_PARAMETER

    def __init__(self, body_map: BodyMap, body_name: str) -> None:
        super().__init__(body_name)
        self._body = body_map[body_name]

    def get_current_value(self) -> float:
        return self._body.gravitational_parameter

    def set_current_value(self, value) -> None:
        self._body.gravitational_parameter = float(value)


class ConstantDragCoefficient(EstimatableParameter):
    parameter_type = EstimatableParameterType.CONSTANT_DRAG_COEFFICIENT

    def __init__(self, body_map: BodyMap, body_name: str) -> None:
        super().__init__(body_name)
        body = body_map[body_name]
        if body.aerodynamics is None:
            raise ValueError(f"Body '{body_name}' has no aerodynamic properties")
        self._properties = body.aerodynamics

    def get_current_value(self) -> float:
        return self._properties.drag_coefficient

    def set_current_value(self, value) -> None:
        self._properties.drag_coefficient = float(value)


class RadiationPressureCoefficient(EstimatableParameter):
    parameter_type = EstimatableParameterType.RADIATION_PRESSURE_COEFFICIENT

    def __init__(self, body_map: BodyMap, body_name: str) -> None:
        super().__init__(body_name)
        body = body_map[body_name]
        if body.radiation_pressure is None:
            raise ValueError(f"Body '{body_name}' has no radiation pressure properties")
        self._properties = body.radiation_pressure

    def get_current_value(self) -> float:
        return self._properties.radiation_pressure_coefficient

    def set_current_value(self, value) -> None:
        self._properties.radiation_pressure_coefficient = float(value)


class ConstantObservationBiasParameter(EstimatableParameter):
    """Constant additive bias of one observation model.

    The associated body is the first link end's body; the link ends and
    observable type identify the model the bias belongs to.
    """

    parameter_type = EstimatableParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS

    def __init__(
        self,
        link_ends: LinkEnds,
        observable_type: ObservableType,
        observation_bias: ConstantObservationBias,
    ) -> None:
        if len(link_ends) == 0:
            raise ValueError("Observation bias parameter needs at least one link end")
        first_link_end = link_ends.items()[0][1]
        super().__init__(first_link_end.body_name)
        self.link_ends = link_ends
        self.observable_type = observable_type
        self._observation_bias = observation_bias

    @property
    def size(self) -> int:
        return self._observation_bias.size

    def get_current_value(self) -> np.ndarray:
        return self._observation_bias.bias

    def set_current_value(self, value) -> None:
        self._observation_bias.reset_bias(value)

    def description(self) -> str:
        return f"{self.parameter_type.value} of {observable_name(self.observable_type)} {self.link_ends}"


class InitialTranslationalState(EstimatableParameter):
    """Initial Cartesian state of a body propagated by a KeplerEphemeris."""

    parameter_type = EstimatableParameterType.INITIAL_BODY_STATE

    def __init__(self, body_map: BodyMap, body_name: str) -> None:
        super().__init__(body_name)
        ephemeris = body_map[body_name].ephemeris
        if not isinstance(ephemeris, KeplerEphemeris):
            raise ValueError(
                f"Initial state of '{body_name}' is only estimatable with a Kepler ephemeris"
            )
        self._ephemeris = ephemeris

    @property
    def size(self) -> int:
        return 6

    @property
    def ephemeris(self) -> KeplerEphemeris:
        return self._ephemeris

    def get_current_value(self) -> np.ndarray:
        return self._ephemeris.initial_state

    def set_current_value(self, value) -> None:
        self._ephemeris.reset_initial_state(value)


class EstimatableParameterSet:
    """Ordered parameters with a single concatenated value vector."""

    def __init__(self, parameters: list[EstimatableParameter]) -> None:
        if not parameters:
            raise ValueError("Parameter set must contain at least one parameter")
        self._parameters = tuple(parameters)
        self._indices: list[tuple[int, int]] = []
        start = 0
        for parameter in self._parameters:
            self._indices.append((start, parameter.size))
            start += parameter.size
        self._total_size = start

    @property
    def parameters(self) -> tuple[EstimatableParameter, ...]:
        return self._parameters

    @property
    def total_size(self) -> int:
        return self._total_size

    @property
    def indices(self) -> tuple[tuple[int, int], ...]:
        """(start column, size) of each parameter in the value vector."""
        return tuple(self._indices)

    def get_values(self) -> np.ndarray:
        values = np.zeros(self._total_size)
        for parameter, (start, size) in zip(self._parameters, self._indices):
            values[start:start + size] = np.atleast_1d(parameter.get_current_value())
        return values

    def set_values(self, values) -> None:
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self._total_size,):
            raise ValueError(
                f"Parameter vector must have {self._total_size} entries, got {values.shape}"
            )
        for parameter, (start, size) in zip(self._parameters, self._indices):
            if parameter.is_scalar:
                parameter.set_current_value(float(values[start]))
            else:
                parameter.set_current_value(values[start:start + size].copy())
