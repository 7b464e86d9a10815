# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Acceleration models consumed by the partial-derivative framework.

Each model implements the AccelerationModel port: update_members(time)
reads the current states of the bodies it refers to (by name, from the
BodyMap) and caches the acceleration; calling it again with the same
time is a no-op until reset_time() is called.

Intermediate quantities (relative position, gravitational parameter,
density, ...) are exposed so the analytic partials reuse them.
"""
import math
from abc import ABC, abstractmethod
from enum import Enum

import numpy as np

from tracklink.domain.bodies import Body, BodyMap
from tracklink.domain.physical_constants import PhysicalConstants


class AccelerationType(Enum):
    CENTRAL_GRAVITY = "central_gravity"
    THIRD_BODY_CENTRAL_GRAVITY = "third_body_central_gravity"
    CANNONBALL_RADIATION_PRESSURE = "cannonball_radiation_pressure"
    AERODYNAMIC = "aerodynamic"


def point_mass_acceleration(relative_position: np.ndarray, mu: float) -> np.ndarray:
    """-mu * r / |r|^3 for r from the attracting body to the attracted point."""
    r = float(np.linalg.norm(relative_position))
    return -mu * relative_position / (r * r * r)


class _TimeCachedAccelerationModel(ABC):
    """Time cache shared by all acceleration models."""

    acceleration_type: AccelerationType

    def __init__(self, body_map: BodyMap, accelerated_body: str, accelerating_body: str) -> None:
        self._body_map = body_map
        # Resolve now so unknown names fail at construction.
        body_map[accelerated_body]
        body_map[accelerating_body]
        self.accelerated_body = accelerated_body
        self.accelerating_body = accelerating_body
        self._current_time: float | None = None
        self._acceleration: np.ndarray | None = None

    @property
    def body_map(self) -> BodyMap:
        return self._body_map

    @property
    def current_time(self) -> float | None:
        return self._current_time

    def _body(self, name: str) -> Body:
        return self._body_map[name]

    def update_members(self, time: float) -> None:
        if self._current_time is not None and time == self._current_time:
            return
        self._acceleration = self._compute()
        self._current_time = time

    def reset_time(self) -> None:
        self._current_time = None

    @property
    def acceleration(self) -> np.ndarray:
        if self._acceleration is None:
            raise RuntimeError(
                f"{type(self).__name__} on '{self.accelerated_body}' has not been updated"
            )
        return self._acceleration.copy()

    @abstractmethod
    def _compute(self) -> np.ndarray:
        ...


class CentralGravityAcceleration(_TimeCachedAccelerationModel):
    """Point-mass gravity of the accelerating body on the accelerated body.

    With mutual attraction the gravitational parameters of both bodies
    are summed (relative motion of the accelerated body).
    """

    acceleration_type = AccelerationType.CENTRAL_GRAVITY

    def __init__(
        self,
        body_map: BodyMap,
        accelerated_body: str,
        accelerating_body: str,
        use_mutual_attraction: bool = False,
    ) -> None:
        super().__init__(body_map, accelerated_body, accelerating_body)
        self.use_mutual_attraction = use_mutual_attraction
        self.relative_position = np.zeros(3)
        self.gravitational_parameter = 0.0

    def _compute(self) -> np.ndarray:
        accelerated = self._body(self.accelerated_body)
        accelerating = self._body(self.accelerating_body)
        mu = accelerating.gravitational_parameter
        if self.use_mutual_attraction:
            mu += accelerated.gravitational_parameter
        self.gravitational_parameter = mu
        self.relative_position = accelerated.position - accelerating.position
        return point_mass_acceleration(self.relative_position, mu)


class ThirdBodyCentralGravityAcceleration(_TimeCachedAccelerationModel):
    """Third-body point-mass gravity in a frame centred on a central body.

    a = -mu_3 * (r_acc - r_3) / |r_acc - r_3|^3 + mu_3 * (r_c - r_3) / |r_c - r_3|^3
    """

    acceleration_type = AccelerationType.THIRD_BODY_CENTRAL_GRAVITY

    def __init__(
        self,
        body_map: BodyMap,
        accelerated_body: str,
        accelerating_body: str,
        central_body: str,
    ) -> None:
        super().__init__(body_map, accelerated_body, accelerating_body)
        body_map[central_body]
        self.central_body = central_body
        self.direct_relative_position = np.zeros(3)
        self.central_body_relative_position = np.zeros(3)
        self.gravitational_parameter = 0.0

    def _compute(self) -> np.ndarray:
        third = self._body(self.accelerating_body)
        mu = third.gravitational_parameter
        self.gravitational_parameter = mu
        self.direct_relative_position = (
            self._body(self.accelerated_body).position - third.position
        )
        self.central_body_relative_position = (
            self._body(self.central_body).position - third.position
        )
        return (
            point_mass_acceleration(self.direct_relative_position, mu)
            - point_mass_acceleration(self.central_body_relative_position, mu)
        )


class CannonballRadiationPressureAcceleration(_TimeCachedAccelerationModel):
    """Cannonball radiation pressure from a point source (the Sun).

    a = C_r * A * P(d) / m * d_hat,  P(d) = P_1AU * (AU / |d|)^2,
    d = r_acc - r_source.
    """

    acceleration_type = AccelerationType.CANNONBALL_RADIATION_PRESSURE

    def __init__(self, body_map: BodyMap, accelerated_body: str) -> None:
        properties = body_map[accelerated_body].radiation_pressure
        if properties is None:
            raise ValueError(f"Body '{accelerated_body}' has no radiation pressure properties")
        if body_map[accelerated_body].mass_kg is None:
            raise ValueError(f"Body '{accelerated_body}' has no mass")
        super().__init__(body_map, accelerated_body, properties.source_body)
        self.relative_position = np.zeros(3)
        self.radiation_pressure = 0.0

    @property
    def properties(self):
        return self._body(self.accelerated_body).radiation_pressure

    @property
    def mass_kg(self) -> float:
        return self._body(self.accelerated_body).mass_kg

    def _compute(self) -> np.ndarray:
        self.relative_position = (
            self._body(self.accelerated_body).position
            - self._body(self.accelerating_body).position
        )
        distance = float(np.linalg.norm(self.relative_position))
        au = PhysicalConstants.ASTRONOMICAL_UNIT
        self.radiation_pressure = PhysicalConstants.SOLAR_RADIATION_PRESSURE_1AU * (au / distance) ** 2
        properties = self.properties
        magnitude = (
            properties.radiation_pressure_coefficient * properties.area_m2
            * self.radiation_pressure / self.mass_kg
        )
        return magnitude * self.relative_position / distance


class AerodynamicDragAcceleration(_TimeCachedAccelerationModel):
    """Cannonball drag in the non-rotating exponential atmosphere of the central body.

    a = -1/2 * rho(h) * C_D * A / m * |v_rel| * v_rel
    """

    acceleration_type = AccelerationType.AERODYNAMIC

    def __init__(self, body_map: BodyMap, accelerated_body: str, central_body: str) -> None:
        super().__init__(body_map, accelerated_body, central_body)
        if body_map[accelerated_body].aerodynamics is None:
            raise ValueError(f"Body '{accelerated_body}' has no aerodynamic properties")
        if body_map[accelerated_body].mass_kg is None:
            raise ValueError(f"Body '{accelerated_body}' has no mass")
        if body_map[central_body].atmosphere is None:
            raise ValueError(f"Body '{central_body}' has no atmosphere")
        self.relative_position = np.zeros(3)
        self.relative_velocity = np.zeros(3)
        self.density = 0.0

    @property
    def properties(self):
        return self._body(self.accelerated_body).aerodynamics

    @property
    def atmosphere(self):
        return self._body(self.accelerating_body).atmosphere

    @property
    def mass_kg(self) -> float:
        return self._body(self.accelerated_body).mass_kg

    def _compute(self) -> np.ndarray:
        accelerated = self._body(self.accelerated_body)
        central = self._body(self.accelerating_body)
        self.relative_position = accelerated.position - central.position
        self.relative_velocity = accelerated.velocity - central.velocity
        atmosphere = self.atmosphere
        altitude = float(np.linalg.norm(self.relative_position)) - atmosphere.body_radius_m
        self.density = atmosphere.density(altitude)
        properties = self.properties
        speed = math.sqrt(float(np.dot(self.relative_velocity, self.relative_velocity)))
        return (
            -0.5 * self.density * properties.drag_coefficient * properties.reference_area_m2
            / self.mass_kg * speed * self.relative_velocity
        )
