# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""Tests for analytic acceleration partials against central differences."""
import ast

import numpy as np
import pytest

from tracklink.domain import acceleration_partials
from tracklink.domain.acceleration_models import (
    AccelerationType,
    AerodynamicDragAcceleration,
    CannonballRadiationPressureAcceleration,
    CentralGravityAcceleration,
    ThirdBodyCentralGravityAcceleration,
    _TimeCachedAccelerationModel,
)
from tracklink.domain.acceleration_partials import (
    AccelerationPartial,
    AerodynamicDragPartial,
    CannonballRadiationPressurePartial,
    CentralGravityPartial,
    ThirdBodyCentralGravityPartial,
    create_acceleration_partial,
    register_acceleration_partial_creator,
)
from tracklink.domain.bodies import (
    AerodynamicProperties,
    Body,
    BodyMap,
    ExponentialAtmosphere,
    RadiationPressureProperties,
)
from tracklink.domain.ephemerides import ConstantEphemeris, KeplerEphemeris, kepler_to_cartesian
from tracklink.domain.estimatable_parameters import (
    ConstantDragCoefficient,
    GravitationalParameter,
    RadiationPressureCoefficient,
)
from tracklink.domain.numerical_partials import (
    calculate_acceleration_wrt_parameter_partials,
    calculate_acceleration_wrt_state_partials,
)
from tracklink.domain.physical_constants import PhysicalConstants

TIME = 1.0e6

MU_SUN = PhysicalConstants.MU_SUN
MU_EARTH = PhysicalConstants.MU_EARTH

# Heliocentric Earth, geocentric Moon and vehicle, all at TIME (m, m/s).
SUN_EPHEMERIS = ConstantEphemeris([2.0e8, -1.0e8, 5.0e6, 10.0, -5.0, 0.1])
EARTH_EPHEMERIS = KeplerEphemeris(
    kepler_to_cartesian(PhysicalConstants.ASTRONOMICAL_UNIT, 0.0167, 0.0004, 0.3, 1.8, 0.2, MU_SUN),
    0.0,
    MU_SUN,
    origin=SUN_EPHEMERIS,
)
MOON_EPHEMERIS = KeplerEphemeris(
    kepler_to_cartesian(3.844e8, 0.0549, 0.09, 2.1, 0.4, 1.0, MU_EARTH),
    0.0,
    MU_EARTH,
    origin=EARTH_EPHEMERIS,
)
VEHICLE_EPHEMERIS = KeplerEphemeris(
    kepler_to_cartesian(7.3e6, 0.001, 0.9, 0.5, 0.2, 0.8, MU_EARTH),
    0.0,
    MU_EARTH,
    origin=EARTH_EPHEMERIS,
)

SUN_STATE = SUN_EPHEMERIS.cartesian_state(TIME)
EARTH_STATE = EARTH_EPHEMERIS.cartesian_state(TIME)
MOON_STATE = MOON_EPHEMERIS.cartesian_state(TIME)
VEHICLE_STATE = VEHICLE_EPHEMERIS.cartesian_state(TIME)

# Geocentric low orbit for drag.
LEO_STATE = np.array([6_600_000.0, 1_200_000.0, 900_000.0, -1_300.0, 7_300.0, 1_100.0])


def _assert_matrix_close(analytic, numerical, tolerance):
    """Largest entry error within tolerance times the largest entry."""
    analytic = np.asarray(analytic)
    numerical = np.asarray(numerical)
    scale = np.max(np.abs(numerical))
    assert scale > 0.0
    assert np.max(np.abs(analytic - numerical)) <= tolerance * scale


def _state_block(partial, method_name, *args):
    out = np.zeros((3, 3))
    getattr(partial, method_name)(*args, out)
    return out


class _ConstantThrust:
    """Acceleration of a new kind, tagged with its own type."""

    acceleration_type = "constant_thrust"
    accelerated_body = "Vehicle"
    acceleration = np.array([1.0e-6, 0.0, 0.0])

    def update_members(self, time):
        pass

    def reset_time(self):
        pass


class _ConstantThrustPartial(AccelerationPartial):

    def __init__(self, acceleration_model):
        super().__init__(acceleration_model, "Vehicle", "Vehicle")

    def _update_partials(self):
        pass


@pytest.fixture
def body_map():
    sun = Body("Sun", SUN_EPHEMERIS, gravitational_parameter=MU_SUN)
    earth = Body(
        "Earth",
        EARTH_EPHEMERIS,
        gravitational_parameter=MU_EARTH,
        atmosphere=ExponentialAtmosphere(
            3.0e-12, 60_000.0, PhysicalConstants.R_EARTH, reference_altitude_m=400_000.0,
        ),
    )
    moon = Body("Moon", MOON_EPHEMERIS, gravitational_parameter=PhysicalConstants.MU_MOON)
    vehicle = Body(
        "Vehicle",
        VEHICLE_EPHEMERIS,
        mass_kg=500.0,
        aerodynamics=AerodynamicProperties(reference_area_m2=10.0, drag_coefficient=2.2),
        radiation_pressure=RadiationPressureProperties(area_m2=12.0, radiation_pressure_coefficient=1.3),
    )
    body_map = BodyMap([sun, earth, moon, vehicle])
    body_map.update_states_from_ephemerides(TIME)
    return body_map


@pytest.fixture
def geocentric_body_map(body_map):
    body_map["Earth"].set_state(np.zeros(6))
    body_map["Vehicle"].set_state(LEO_STATE)
    return body_map


class TestCentralGravityPartial:

    @pytest.fixture
    def model(self, body_map):
        return CentralGravityAcceleration(body_map, "Earth", "Sun")

    @pytest.fixture
    def partial(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        return partial

    def test_factory_type(self, partial):
        assert isinstance(partial, CentralGravityPartial)
        assert partial.accelerated_body == "Earth"
        assert partial.accelerating_body == "Sun"

    def test_wrt_accelerated_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerated_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Earth"], model, TIME, 1.0e4, start_index=0,
        )
        _assert_matrix_close(analytic, numerical, 1e-8)

    def test_wrt_accelerating_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerating_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Sun"], model, TIME, 1.0e4, start_index=0,
        )
        _assert_matrix_close(analytic, numerical, 1e-8)

    def test_position_partials_are_opposite(self, partial):
        accelerated = _state_block(partial, "wrt_position_of_accelerated_body")
        accelerating = _state_block(partial, "wrt_position_of_accelerating_body")
        np.testing.assert_array_equal(accelerated, -accelerating)

    def test_velocity_partials_are_zero(self, body_map, model, partial):
        np.testing.assert_array_equal(
            _state_block(partial, "wrt_velocity_of_accelerated_body"), np.zeros((3, 3)),
        )
        np.testing.assert_array_equal(
            _state_block(partial, "wrt_velocity_of_accelerating_body"), np.zeros((3, 3)),
        )
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Earth"], model, TIME, 1.0, start_index=3,
        )
        np.testing.assert_array_equal(numerical, np.zeros((3, 3)))

    def test_wrt_gravitational_parameter(self, body_map, model, partial):
        parameter = GravitationalParameter(body_map, "Sun")
        analytic = partial.wrt_parameter(parameter)
        numerical = calculate_acceleration_wrt_parameter_partials(parameter, model, TIME, 1.0e16)
        assert analytic.shape == (3,)
        _assert_matrix_close(analytic, numerical, 1e-8)

    def test_accelerated_mu_irrelevant_without_mutual_attraction(self, body_map, partial):
        parameter = GravitationalParameter(body_map, "Earth")
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros(3))
        assert not partial.is_parameter_dependent(parameter)

    def test_drag_coefficient_partial_is_zero(self, body_map, partial):
        parameter = ConstantDragCoefficient(body_map, "Vehicle")
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros(3))

    def test_restores_state_after_numerical_partial(self, body_map, model):
        before = body_map["Earth"].state
        calculate_acceleration_wrt_state_partials(body_map["Earth"], model, TIME, 1.0e4)
        np.testing.assert_array_equal(body_map["Earth"].state, before)


class TestMutualCentralGravityPartial:

    @pytest.fixture
    def model(self, body_map):
        return CentralGravityAcceleration(body_map, "Moon", "Earth", use_mutual_attraction=True)

    @pytest.fixture
    def partial(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        return partial

    def test_wrt_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerated_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Moon"], model, TIME, 1.0e4, start_index=0,
        )
        _assert_matrix_close(analytic, numerical, 1e-8)

    @pytest.mark.parametrize("body_name", ["Earth", "Moon"])
    def test_both_gravitational_parameters(self, body_map, model, partial, body_name):
        parameter = GravitationalParameter(body_map, body_name)
        analytic = partial.wrt_parameter(parameter)
        numerical = calculate_acceleration_wrt_parameter_partials(parameter, model, TIME, 1.0e9)
        _assert_matrix_close(analytic, numerical, 1e-8)

    def test_sun_parameter_is_zero(self, body_map, partial):
        parameter = GravitationalParameter(body_map, "Sun")
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros(3))


class TestThirdBodyPartial:

    @pytest.fixture
    def model(self, body_map):
        return ThirdBodyCentralGravityAcceleration(body_map, "Moon", "Sun", "Earth")

    @pytest.fixture
    def partial(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        return partial

    def test_factory_type(self, partial):
        assert isinstance(partial, ThirdBodyCentralGravityPartial)
        assert partial.additional_bodies() == ("Earth",)

    def test_acceleration_is_direct_minus_indirect(self, body_map, model):
        model.update_members(TIME)
        mu = PhysicalConstants.MU_SUN
        to_moon = SUN_STATE[:3] - MOON_STATE[:3]
        to_earth = SUN_STATE[:3] - EARTH_STATE[:3]
        expected = mu * (
            to_moon / np.linalg.norm(to_moon) ** 3 - to_earth / np.linalg.norm(to_earth) ** 3
        )
        np.testing.assert_allclose(model.acceleration, expected, rtol=1e-6)

    def test_wrt_accelerated_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerated_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Moon"], model, TIME, 1.0e4,
        )
        _assert_matrix_close(analytic, numerical, 1e-5)

    def test_wrt_accelerating_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerating_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Sun"], model, TIME, 1.0e6,
        )
        _assert_matrix_close(analytic, numerical, 1e-5)

    def test_wrt_central_body_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_additional_body", "Earth")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Earth"], model, TIME, 1.0e4,
        )
        _assert_matrix_close(analytic, numerical, 1e-5)

    def test_velocity_partials_are_zero(self, body_map, model, partial):
        for method_name in ("wrt_velocity_of_accelerated_body", "wrt_velocity_of_accelerating_body"):
            np.testing.assert_array_equal(_state_block(partial, method_name), np.zeros((3, 3)))
        np.testing.assert_array_equal(
            _state_block(partial, "wrt_velocity_of_additional_body", "Earth"), np.zeros((3, 3)),
        )
        for body_name in ("Moon", "Sun", "Earth"):
            numerical = calculate_acceleration_wrt_state_partials(
                body_map[body_name], model, TIME, 1.0, start_index=3,
            )
            np.testing.assert_array_equal(numerical, np.zeros((3, 3)))

    def test_unrelated_additional_body(self, partial):
        np.testing.assert_array_equal(
            _state_block(partial, "wrt_position_of_additional_body", "Vehicle"), np.zeros((3, 3)),
        )

    def test_wrt_third_body_gravitational_parameter(self, body_map, model, partial):
        parameter = GravitationalParameter(body_map, "Sun")
        analytic = partial.wrt_parameter(parameter)
        numerical = calculate_acceleration_wrt_parameter_partials(parameter, model, TIME, 1.0e18)
        _assert_matrix_close(analytic, numerical, 1e-8)

    @pytest.mark.parametrize("body_name", ["Earth", "Moon"])
    def test_other_gravitational_parameters_are_zero(self, body_map, partial, body_name):
        parameter = GravitationalParameter(body_map, body_name)
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros(3))


class TestRadiationPressurePartial:

    @pytest.fixture
    def model(self, body_map):
        return CannonballRadiationPressureAcceleration(body_map, "Vehicle")

    @pytest.fixture
    def partial(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        return partial

    def test_factory_type(self, partial):
        assert isinstance(partial, CannonballRadiationPressurePartial)
        assert partial.accelerating_body == "Sun"

    def test_acceleration_points_away_from_sun(self, model):
        model.update_members(TIME)
        away = VEHICLE_STATE[:3] - SUN_STATE[:3]
        assert np.dot(model.acceleration, away) > 0.0
        distance = np.linalg.norm(away)
        pressure = PhysicalConstants.SOLAR_RADIATION_PRESSURE_1AU * (
            PhysicalConstants.ASTRONOMICAL_UNIT / distance
        ) ** 2
        assert np.linalg.norm(model.acceleration) == pytest.approx(1.3 * 12.0 * pressure / 500.0)

    def test_wrt_accelerated_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerated_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Vehicle"], model, TIME, 1.0e5,
        )
        _assert_matrix_close(analytic, numerical, 1e-6)

    def test_wrt_source_position(self, body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerating_body")
        numerical = calculate_acceleration_wrt_state_partials(
            body_map["Sun"], model, TIME, 1.0e5,
        )
        _assert_matrix_close(analytic, numerical, 1e-6)

    def test_wrt_radiation_pressure_coefficient(self, body_map, model, partial):
        parameter = RadiationPressureCoefficient(body_map, "Vehicle")
        analytic = partial.wrt_parameter(parameter)
        numerical = calculate_acceleration_wrt_parameter_partials(parameter, model, TIME, 0.1)
        _assert_matrix_close(analytic, numerical, 1e-8)
        np.testing.assert_allclose(analytic * 1.3, model.acceleration, rtol=1e-12)

    def test_gravitational_parameter_is_zero(self, body_map, partial):
        parameter = GravitationalParameter(body_map, "Sun")
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros(3))

    def test_missing_properties(self, body_map):
        with pytest.raises(ValueError, match="radiation pressure"):
            CannonballRadiationPressureAcceleration(body_map, "Moon")


class TestAerodynamicDragPartial:

    @pytest.fixture
    def model(self, geocentric_body_map):
        return AerodynamicDragAcceleration(geocentric_body_map, "Vehicle", "Earth")

    @pytest.fixture
    def partial(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        return partial

    def test_factory_type(self, partial):
        assert isinstance(partial, AerodynamicDragPartial)

    def test_drag_opposes_velocity(self, model):
        model.update_members(TIME)
        assert np.dot(model.acceleration, LEO_STATE[3:]) < 0.0

    def test_wrt_accelerated_position(self, geocentric_body_map, model, partial):
        analytic = _state_block(partial, "wrt_position_of_accelerated_body")
        numerical = calculate_acceleration_wrt_state_partials(
            geocentric_body_map["Vehicle"], model, TIME, 10.0, start_index=0,
        )
        _assert_matrix_close(analytic, numerical, 1e-6)

    def test_wrt_accelerated_velocity(self, geocentric_body_map, model, partial):
        analytic = _state_block(partial, "wrt_velocity_of_accelerated_body")
        numerical = calculate_acceleration_wrt_state_partials(
            geocentric_body_map["Vehicle"], model, TIME, 0.01, start_index=3,
        )
        _assert_matrix_close(analytic, numerical, 1e-6)

    def test_wrt_central_body_state(self, geocentric_body_map, model, partial):
        position = _state_block(partial, "wrt_position_of_accelerating_body")
        velocity = _state_block(partial, "wrt_velocity_of_accelerating_body")
        numerical_position = calculate_acceleration_wrt_state_partials(
            geocentric_body_map["Earth"], model, TIME, 10.0, start_index=0,
        )
        numerical_velocity = calculate_acceleration_wrt_state_partials(
            geocentric_body_map["Earth"], model, TIME, 0.01, start_index=3,
        )
        _assert_matrix_close(position, numerical_position, 1e-6)
        _assert_matrix_close(velocity, numerical_velocity, 1e-6)

    def test_wrt_drag_coefficient(self, geocentric_body_map, model, partial):
        parameter = ConstantDragCoefficient(geocentric_body_map, "Vehicle")
        analytic = partial.wrt_parameter(parameter)
        numerical = calculate_acceleration_wrt_parameter_partials(parameter, model, TIME, 0.1)
        _assert_matrix_close(analytic, numerical, 1e-8)

    def test_radiation_coefficient_partial_is_zero(self, geocentric_body_map, partial):
        parameter = RadiationPressureCoefficient(geocentric_body_map, "Vehicle")
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros(3))

    def test_missing_atmosphere(self, geocentric_body_map):
        with pytest.raises(ValueError, match="atmosphere"):
            AerodynamicDragAcceleration(geocentric_body_map, "Vehicle", "Moon")


class TestPartialStateMachine:

    @pytest.fixture
    def model(self, body_map):
        return CentralGravityAcceleration(body_map, "Earth", "Sun")

    def test_query_before_update_raises(self, model):
        partial = create_acceleration_partial(model)
        with pytest.raises(RuntimeError):
            partial.wrt_position_of_accelerated_body(np.zeros((3, 3)))
        with pytest.raises(RuntimeError):
            partial.wrt_parameter(None)

    def test_reset_time_uninitializes(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        partial.reset_time()
        assert partial.current_time is None
        with pytest.raises(RuntimeError):
            partial.wrt_velocity_of_accelerating_body(np.zeros((3, 3)))

    def test_repeated_time_is_cached(self, body_map, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        before = _state_block(partial, "wrt_position_of_accelerated_body")
        body_map["Earth"].set_state(EARTH_STATE * 1.01)
        partial.update(TIME)
        np.testing.assert_array_equal(
            _state_block(partial, "wrt_position_of_accelerated_body"), before,
        )
        partial.reset_time()
        partial.update(TIME)
        assert not np.array_equal(_state_block(partial, "wrt_position_of_accelerated_body"), before)

    def test_new_time_recomputes(self, body_map, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        before = _state_block(partial, "wrt_position_of_accelerated_body")
        body_map["Earth"].set_state(EARTH_STATE * 1.01)
        partial.update(TIME + 60.0)
        assert partial.current_time == TIME + 60.0
        assert not np.array_equal(_state_block(partial, "wrt_position_of_accelerated_body"), before)

    def test_blocks_accumulate_at_offset(self, model):
        partial = create_acceleration_partial(model)
        partial.update(TIME)
        block = _state_block(partial, "wrt_position_of_accelerated_body")
        out = np.zeros((6, 6))
        partial.wrt_position_of_accelerated_body(out, 2.0, 3, 0)
        partial.wrt_position_of_accelerated_body(out, -0.5, 3, 0)
        np.testing.assert_allclose(out[3:6, 0:3], 1.5 * block, rtol=1e-15)
        assert np.all(out[0:3, :] == 0.0)
        assert np.all(out[:, 3:6] == 0.0)

    def test_unknown_model_type(self):
        class _Constant:
            acceleration = np.zeros(3)

            def update_members(self, time):
                pass

            def reset_time(self):
                pass

        with pytest.raises(ValueError, match="not recognized"):
            create_acceleration_partial(_Constant())

    def test_base_classes_are_abstract(self, body_map, model):
        with pytest.raises(TypeError):
            AccelerationPartial(model, "Earth", "Sun")
        with pytest.raises(TypeError):
            _TimeCachedAccelerationModel(body_map, "Earth", "Sun")

    def test_registered_creator_dispatches(self, monkeypatch):
        monkeypatch.setattr(
            acceleration_partials,
            "_ACCELERATION_PARTIAL_CREATORS",
            dict(acceleration_partials._ACCELERATION_PARTIAL_CREATORS),
        )
        register_acceleration_partial_creator("constant_thrust", _ConstantThrustPartial)

        partial = create_acceleration_partial(_ConstantThrust())

        assert isinstance(partial, _ConstantThrustPartial)
        partial.update(TIME)
        assert partial.current_time == TIME
        np.testing.assert_array_equal(
            _state_block(partial, "wrt_position_of_accelerated_body"), np.zeros((3, 3)),
        )

    def test_registered_creator_is_scoped(self):
        with pytest.raises(ValueError, match="not recognized"):
            create_acceleration_partial(_ConstantThrust())

    def test_acceleration_type_registered(self, model):
        assert model.acceleration_type is AccelerationType.CENTRAL_GRAVITY


class TestAccelerationModelCache:

    def test_model_not_updated_raises(self, body_map):
        model = CentralGravityAcceleration(body_map, "Earth", "Sun")
        with pytest.raises(RuntimeError):
            model.acceleration

    def test_unknown_body(self, body_map):
        with pytest.raises(ValueError, match="Jupiter"):
            CentralGravityAcceleration(body_map, "Earth", "Jupiter")

    def test_point_mass_value(self, body_map):
        model = CentralGravityAcceleration(body_map, "Earth", "Sun")
        model.update_members(TIME)
        r = EARTH_STATE[:3] - SUN_STATE[:3]
        expected = -PhysicalConstants.MU_SUN * r / np.linalg.norm(r) ** 3
        np.testing.assert_allclose(model.acceleration, expected, rtol=1e-14)


# ── Domain purity ────────────────────────────────────────────────────

class TestAccelerationPartialsPurity:

    @pytest.mark.parametrize("module_name", [
        "acceleration_models",
        "acceleration_partials",
        "numerical_partials",
        "estimatable_parameters",
    ])
    def test_imports_only_stdlib_numpy_and_domain(self, module_name):
        import importlib
        mod = importlib.import_module(f"tracklink.domain.{module_name}")

        allowed = {'math', 'numpy', 'dataclasses', 'typing', 'abc', 'enum', '__future__'}
        with open(mod.__file__) as f:
            tree = ast.parse(f.read())

        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    root = alias.name.split('.')[0]
                    if root not in allowed and not root.startswith('tracklink'):
                        assert False, f"Disallowed import '{alias.name}'"
            if isinstance(node, ast.ImportFrom):
                if node.module and node.level == 0:
                    root = node.module.split('.')[0]
                    if root not in allowed and root != 'tracklink':
                        assert False, f"Disallowed import from '{node.module}'"
