# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Bodies and the body map.

The BodyMap is an arena owning every Body; acceleration models, partials
and parameters refer to bodies by name and look them up here. A body
carries a *current state* that acceleration models read when updated,
either set directly or from the body's ephemeris.
"""
import math
from dataclasses import dataclass

import numpy as np

from tracklink.ports import StateProvider


@dataclass(frozen=True)
class ExponentialAtmosphere:
    """Exponential atmosphere: rho = rho0 * exp(-(h - h0) / H).

    Attributes:
        reference_density_kg_m3: Density at the reference altitude.
        scale_height_m: Density scale height H.
        reference_altitude_m: Altitude h0 at which the reference density holds.
        body_radius_m: Radius used to convert distance to altitude.
    """
    reference_density_kg_m3: float
    scale_height_m: float
    body_radius_m: float
    reference_altitude_m: float = 0.0

    def __post_init__(self) -> None:
        if self.reference_density_kg_m3 < 0.0:
            raise ValueError(
                f"reference_density_kg_m3 must be non-negative, got {self.reference_density_kg_m3}"
            )
        if self.scale_height_m <= 0.0:
            raise ValueError(f"scale_height_m must be positive, got {self.scale_height_m}")

    def density(self, altitude_m: float) -> float:
        return self.reference_density_kg_m3 * math.exp(
            -(altitude_m - self.reference_altitude_m) / self.scale_height_m
        )


@dataclass
class AerodynamicProperties:
    """Cannonball drag properties (drag coefficient is estimatable)."""
    reference_area_m2: float
    drag_coefficient: float


@dataclass
class RadiationPressureProperties:
    """Cannonball radiation-pressure properties (coefficient is estimatable)."""
    area_m2: float
    radiation_pressure_coefficient: float
    source_body: str = "Sun"


class Body:
    """A body in the arena: physical properties plus a current state."""

    def __init__(
        self,
        name: str,
        ephemeris: StateProvider | None = None,
        gravitational_parameter: float = 0.0,
        mass_kg: float | None = None,
        aerodynamics: AerodynamicProperties | None = None,
        radiation_pressure: RadiationPressureProperties | None = None,
        atmosphere: ExponentialAtmosphere | None = None,
    ) -> None:
        self.name = name
        self.ephemeris = ephemeris
        self.gravitational_parameter = float(gravitational_parameter)
        self.mass_kg = mass_kg
        self.aerodynamics = aerodynamics
        self.radiation_pressure = radiation_pressure
        self.atmosphere = atmosphere
        self._reference_points: dict[str, np.ndarray] = {}
        self._state = np.zeros(6)

    def add_reference_point(self, name: str, offset_m) -> None:
        """Add a reference point at a fixed inertial offset from the body centre."""
        offset = np.array(offset_m, dtype=np.float64)
        if offset.shape != (3,):
            raise ValueError(f"Reference point offset must have 3 entries, got {offset.shape}")
        self._reference_points[name] = offset

    def reference_point_offset(self, name: str) -> np.ndarray:
        try:
            return self._reference_points[name].copy()
        except KeyError:
            raise ValueError(f"Body '{self.name}' has no reference point '{name}'") from None

    @property
    def state(self) -> np.ndarray:
        return self._state.copy()

    @property
    def position(self) -> np.ndarray:
        return self._state[:3].copy()

    @property
    def velocity(self) -> np.ndarray:
        return self._state[3:].copy()

    def set_state(self, state) -> None:
        state = np.array(state, dtype=np.float64)
        if state.shape != (6,):
            raise ValueError(f"Body state must have 6 entries, got {state.shape}")
        self._state = state

    def state_from_ephemeris(self, time: float) -> np.ndarray:
        if self.ephemeris is None:
            raise ValueError(f"Body '{self.name}' has no ephemeris")
        return np.array(self.ephemeris.cartesian_state(time), dtype=np.float64)

    def set_state_from_ephemeris(self, time: float) -> None:
        self.set_state(self.state_from_ephemeris(time))


class BodyMap:
    """Arena of bodies indexed by name."""

    def __init__(self, bodies: list[Body] | None = None) -> None:
        self._bodies: dict[str, Body] = {}
        for body in bodies or []:
            self.add(body)

    def add(self, body: Body) -> Body:
        if body.name in self._bodies:
            raise ValueError(f"Body '{body.name}' already exists")
        self._bodies[body.name] = body
        return body

    def __getitem__(self, name: str) -> Body:
        try:
            return self._bodies[name]
        except KeyError:
            raise ValueError(f"Body '{name}' not found in body map") from None

    def __contains__(self, name: object) -> bool:
        return name in self._bodies

    def names(self) -> tuple[str, ...]:
        return tuple(self._bodies)

    def update_states_from_ephemerides(self, time: float) -> None:
        """Set the current state of every body that has an ephemeris."""
        for body in self._bodies.values():
            if body.ephemeris is not None:
                body.set_state_from_ephemeris(time)
