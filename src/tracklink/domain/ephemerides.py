# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Simple state providers (ephemerides).

ConstantEphemeris returns a fixed state; KeplerEphemeris propagates an
initial Cartesian state analytically on a two-body ellipse using the
Lagrange f and g coefficients. Both implement the StateProvider port.
"""
import math

import numpy as np

from tracklink.ports import StateProvider

_KEPLER_TOLERANCE = 1e-14
_KEPLER_MAX_ITERATIONS = 50


def kepler_to_cartesian(
    a: float,
    e: float,
    i_rad: float,
    omega_big_rad: float,
    omega_small_rad: float,
    nu_rad: float,
    mu: float,
) -> np.ndarray:
    """
    Convert Keplerian orbital elements to a Cartesian state.

    Args:
        a: Semi-major axis (m)
        e: Eccentricity (0 for circular)
        i_rad: Inclination (radians)
        omega_big_rad: RAAN / longitude of ascending node (radians)
        omega_small_rad: Argument of periapsis (radians)
        nu_rad: True anomaly (radians)
        mu: Gravitational parameter of the central body (m³/s²)

    Returns:
        6-vector [x, y, z, vx, vy, vz] in m and m/s.
    """
    cos_nu = math.cos(nu_rad)
    sin_nu = math.sin(nu_rad)

    r = a * (1 - e**2) / (1 + e * cos_nu)

    p_factor = math.sqrt(mu / (a * (1 - e**2)))
    pos_pqw = np.array([r * cos_nu, r * sin_nu, 0.0])
    vel_pqw = np.array([
        -p_factor * sin_nu,
        p_factor * (e + cos_nu),
        0.0,
    ])

    cO = math.cos(omega_big_rad)
    sO = math.sin(omega_big_rad)
    co = math.cos(omega_small_rad)
    so = math.sin(omega_small_rad)
    ci = math.cos(i_rad)
    si = math.sin(i_rad)

    rotation = np.array([
        [cO * co - sO * so * ci, -cO * so - sO * co * ci, sO * si],
        [sO * co + cO * so * ci, -sO * so + cO * co * ci, -cO * si],
        [so * si, co * si, ci],
    ])

    return np.concatenate((rotation @ pos_pqw, rotation @ vel_pqw))


def cartesian_to_kepler(
    state: np.ndarray,
    mu: float,
) -> tuple[float, float, float, float, float, float]:
    """
    Convert a Cartesian state to Keplerian orbital elements.

    Angles are returned in [0, 2 pi) except inclination in [0, pi].
    Undefined angles are set to zero: the argument of periapsis for
    circular orbits (true anomaly then counts from the node, or from the
    x-axis when also equatorial) and the RAAN for equatorial orbits.

    Args:
        state: 6-vector [x, y, z, vx, vy, vz] in m and m/s.
        mu: Gravitational parameter of the central body (m³/s²).

    Returns:
        (a, e, i_rad, omega_big_rad, omega_small_rad, nu_rad).

    Raises:
        ValueError: If the orbit is not elliptic.
    """
    state = np.asarray(state, dtype=np.float64)
    r_vec = state[:3]
    v_vec = state[3:]
    r = float(np.linalg.norm(r_vec))
    energy = 0.5 * float(np.dot(v_vec, v_vec)) - mu / r
    if energy >= 0.0:
        raise ValueError("Kepler elements are only defined here for elliptic orbits")
    a = -mu / (2.0 * energy)

    h_vec = np.cross(r_vec, v_vec)
    h = float(np.linalg.norm(h_vec))
    node_vec = np.array([-h_vec[1], h_vec[0], 0.0])
    node = float(np.linalg.norm(node_vec))
    e_vec = np.cross(v_vec, h_vec) / mu - r_vec / r
    e = float(np.linalg.norm(e_vec))

    two_pi = 2.0 * math.pi
    i = math.acos(max(-1.0, min(1.0, h_vec[2] / h)))

    equatorial = node < 1e-12 * h
    circular = e < 1e-12

    raan = 0.0 if equatorial else math.atan2(node_vec[1], node_vec[0]) % two_pi

    if circular:
        arg_periapsis = 0.0
        if equatorial:
            nu = math.atan2(r_vec[1], r_vec[0]) % two_pi
        else:
            # Argument of latitude.
            cos_u = float(np.dot(node_vec, r_vec)) / (node * r)
            nu = math.acos(max(-1.0, min(1.0, cos_u)))
            if r_vec[2] < 0.0:
                nu = two_pi - nu
        return a, e, i, raan, arg_periapsis, nu

    if equatorial:
        arg_periapsis = math.atan2(e_vec[1], e_vec[0]) % two_pi
        if h_vec[2] < 0.0:
            arg_periapsis = (two_pi - arg_periapsis) % two_pi
    else:
        cos_w = float(np.dot(node_vec, e_vec)) / (node * e)
        arg_periapsis = math.acos(max(-1.0, min(1.0, cos_w)))
        if e_vec[2] < 0.0:
            arg_periapsis = two_pi - arg_periapsis

    cos_nu = float(np.dot(e_vec, r_vec)) / (e * r)
    nu = math.acos(max(-1.0, min(1.0, cos_nu)))
    if float(np.dot(r_vec, v_vec)) < 0.0:
        nu = two_pi - nu
    return a, e, i, raan, arg_periapsis, nu


def propagate_kepler_orbit(state: np.ndarray, dt: float, mu: float) -> np.ndarray:
    """Propagate a Cartesian state on a two-body ellipse over dt seconds.

    Solves the eccentric-anomaly form of Kepler's equation for the change
    in eccentric anomaly, then applies the Lagrange f and g coefficients.

    Raises:
        ValueError: If the orbit is not elliptic.
    """
    state = np.asarray(state, dtype=np.float64)
    r0_vec = state[:3]
    v0_vec = state[3:]
    r0 = float(np.linalg.norm(r0_vec))
    if r0 <= 0.0:
        raise ValueError("Cannot propagate a state at the central body origin")
    v0_sq = float(np.dot(v0_vec, v0_vec))
    inverse_a = 2.0 / r0 - v0_sq / mu
    if inverse_a <= 0.0:
        raise ValueError("Kepler propagation requires an elliptic orbit")
    a = 1.0 / inverse_a
    sqrt_a = math.sqrt(a)
    n = math.sqrt(mu / a**3)
    sigma0 = float(np.dot(r0_vec, v0_vec)) / math.sqrt(mu)

    # Remove whole revolutions; f and g are periodic in them.
    period = 2.0 * math.pi / n
    dt_reduced = dt - round(dt / period) * period
    mean_anomaly_change = n * dt_reduced

    delta_e = mean_anomaly_change
    for _ in range(_KEPLER_MAX_ITERATIONS):
        sin_de = math.sin(delta_e)
        cos_de = math.cos(delta_e)
        residual = (
            delta_e
            - (1.0 - r0 / a) * sin_de
            + sigma0 / sqrt_a * (1.0 - cos_de)
            - mean_anomaly_change
        )
        derivative = 1.0 - (1.0 - r0 / a) * cos_de + sigma0 / sqrt_a * sin_de
        step = residual / derivative
        delta_e -= step
        if abs(step) < _KEPLER_TOLERANCE:
            break

    sin_de = math.sin(delta_e)
    cos_de = math.cos(delta_e)
    r = a + (r0 - a) * cos_de + sigma0 * sqrt_a * sin_de

    f = 1.0 - a / r0 * (1.0 - cos_de)
    g = dt_reduced + (sin_de - delta_e) / n
    f_dot = -math.sqrt(mu * a) / (r * r0) * sin_de
    g_dot = 1.0 - a / r * (1.0 - cos_de)

    position = f * r0_vec + g * v0_vec
    velocity = f_dot * r0_vec + g_dot * v0_vec
    return np.concatenate((position, velocity))


class ConstantEphemeris:
    """State provider returning the same state at every time."""

    def __init__(self, state) -> None:
        state = np.array(state, dtype=np.float64)
        if state.shape != (6,):
            raise ValueError(f"Constant ephemeris state must have 6 entries, got {state.shape}")
        self._state = state

    def cartesian_state(self, time: float) -> np.ndarray:
        return self._state.copy()


class KeplerEphemeris:
    """Two-body analytic ephemeris about a (possibly moving) central body.

    The initial state is relative to the central body; when an origin
    ephemeris is given its state is added to every returned state.
    """

    def __init__(
        self,
        initial_state,
        reference_epoch: float,
        central_body_gravitational_parameter: float,
        origin: StateProvider | None = None,
    ) -> None:
        if central_body_gravitational_parameter <= 0.0:
            raise ValueError(
                "central_body_gravitational_parameter must be positive, "
                f"got {central_body_gravitational_parameter}"
            )
        self._reference_epoch = float(reference_epoch)
        self._mu = float(central_body_gravitational_parameter)
        self._origin = origin
        self.reset_initial_state(initial_state)

    @property
    def initial_state(self) -> np.ndarray:
        return self._initial_state.copy()

    @property
    def reference_epoch(self) -> float:
        return self._reference_epoch

    @property
    def gravitational_parameter(self) -> float:
        return self._mu

    def reset_initial_state(self, initial_state) -> None:
        initial_state = np.array(initial_state, dtype=np.float64)
        if initial_state.shape != (6,):
            raise ValueError(f"Initial state must have 6 entries, got {initial_state.shape}")
        # Validates that the orbit is elliptic.
        propagate_kepler_orbit(initial_state, 0.0, self._mu)
        self._initial_state = initial_state

    def relative_state(self, time: float) -> np.ndarray:
        """State w.r.t. the central body at time."""
        return propagate_kepler_orbit(
            self._initial_state, float(time) - self._reference_epoch, self._mu,
        )

    def cartesian_state(self, time: float) -> np.ndarray:
        state = self.relative_state(time)
        if self._origin is not None:
            state = state + self._origin.cartesian_state(time)
        return state
