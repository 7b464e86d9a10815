# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Port interfaces for collaborators consumed by the numerical core.

Ephemerides, acceleration models, light-time corrections and observation
biases are supplied from outside; the core only depends on these shapes.
"""
from typing import Protocol, Sequence, runtime_checkable

import numpy as np


@runtime_checkable
class StateProvider(Protocol):
    """Port for a body's Cartesian state as a function of time."""

    def cartesian_state(self, time: float) -> np.ndarray:
        """Position and velocity (6-vector, m and m/s) at time (s)."""
        ...


@runtime_checkable
class AccelerationModel(Protocol):
    """Port for an acceleration model evaluated at a current time."""

    def update_members(self, time: float) -> None:
        """Recompute the acceleration from current body states at time."""
        ...

    def reset_time(self) -> None:
        """Invalidate the time cache so the next update recomputes."""
        ...

    @property
    def acceleration(self) -> np.ndarray:
        """Acceleration (3-vector, m/s²) from the last update."""
        ...


@runtime_checkable
class LightTimeCorrection(Protocol):
    """Port for a light-time correction term (seconds)."""

    def __call__(
        self,
        transmitter_state: np.ndarray,
        receiver_state: np.ndarray,
        transmission_time: float,
        reception_time: float,
    ) -> float: ...


@runtime_checkable
class ObservationBias(Protocol):
    """Port for a systematic correction applied to an ideal observable."""

    @property
    def size(self) -> int:
        """Size of the observable this bias applies to."""
        ...

    def apply(
        self,
        ideal_observation: np.ndarray,
        link_end_times: Sequence[float],
        link_end_states: Sequence[np.ndarray],
    ) -> np.ndarray:
        """Return the bias-corrected observable."""
        ...
