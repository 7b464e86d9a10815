# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""Tests for analytic observation partials against central differences."""
import ast
import math

import numpy as np
import pytest

from tracklink.domain.bodies import Body, BodyMap
from tracklink.domain.ephemerides import ConstantEphemeris, KeplerEphemeris, kepler_to_cartesian
from tracklink.domain.estimatable_parameters import (
    ConstantObservationBiasParameter,
    GravitationalParameter,
)
from tracklink.domain.link_ends import LinkEnds, LinkEndType, ObservableType
from tracklink.domain.numerical_partials import calculate_observation_wrt_body_state_partials
from tracklink.domain.observation_bias import ConstantObservationBias
from tracklink.domain.observation_partials import (
    AngularPositionPartial,
    ObservationPartial,
    OneWayDopplerPartial,
    OneWayRangePartial,
    PositionObservablePartial,
    create_observation_partial,
)
from tracklink.domain.observation_setup import ObservationSettings, create_observation_model
from tracklink.domain.physical_constants import PhysicalConstants

AU = PhysicalConstants.ASTRONOMICAL_UNIT
MU_SUN = PhysicalConstants.MU_SUN
TIME = 4.0e6
POSITION_PERTURBATION = 1.0e4
VELOCITY_PERTURBATION = 1.0


@pytest.fixture
def body_map():
    earth = Body(
        "Earth",
        KeplerEphemeris(kepler_to_cartesian(AU, 0.0167, 0.0, 0.0, 1.8, 0.2, MU_SUN), 0.0, MU_SUN),
    )
    mars = Body(
        "Mars",
        KeplerEphemeris(
            kepler_to_cartesian(1.524 * AU, 0.093, math.radians(1.85), 0.86, 5.0, 2.4, MU_SUN),
            0.0,
            MU_SUN,
        ),
    )
    sun = Body("Sun", ConstantEphemeris(np.zeros(6)), gravitational_parameter=MU_SUN)
    return BodyMap([sun, earth, mars])


@pytest.fixture
def link_ends():
    return LinkEnds.of({LinkEndType.TRANSMITTER: "Earth", LinkEndType.RECEIVER: "Mars"})


def _assert_block_close(analytic, numerical, tolerance):
    scale = np.max(np.abs(numerical))
    assert scale > 0.0
    assert np.max(np.abs(analytic - numerical)) <= tolerance * scale


def _compare(body_map, link_ends, observable_type, reference, body_name, role,
             position_tolerance, velocity_tolerance):
    model = create_observation_model(link_ends, ObservationSettings(observable_type), body_map)
    _, times, states = model.compute_ideal_observation_with_link_end_data(TIME, reference)
    partial = create_observation_partial(observable_type, link_ends)
    analytic = partial.wrt_link_end_state(role, times, states, reference)
    perturbation = [POSITION_PERTURBATION] * 3 + [VELOCITY_PERTURBATION] * 3
    numerical = calculate_observation_wrt_body_state_partials(
        model, body_map[body_name], TIME, reference, perturbation,
    )
    assert analytic.shape == numerical.shape
    _assert_block_close(analytic[:, :3], numerical[:, :3], position_tolerance)
    if velocity_tolerance is None:
        np.testing.assert_array_equal(analytic[:, 3:], np.zeros((analytic.shape[0], 3)))
        np.testing.assert_array_equal(numerical[:, 3:], np.zeros((analytic.shape[0], 3)))
    else:
        _assert_block_close(analytic[:, 3:], numerical[:, 3:], velocity_tolerance)


ONE_WAY_CASES = [
    (LinkEndType.RECEIVER, "Earth", LinkEndType.TRANSMITTER),
    (LinkEndType.RECEIVER, "Mars", LinkEndType.RECEIVER),
    (LinkEndType.TRANSMITTER, "Earth", LinkEndType.TRANSMITTER),
    (LinkEndType.TRANSMITTER, "Mars", LinkEndType.RECEIVER),
]


class TestOneWayRangePartial:

    @pytest.mark.parametrize("reference,body_name,role", ONE_WAY_CASES)
    def test_against_numerical(self, body_map, link_ends, reference, body_name, role):
        _compare(
            body_map, link_ends, ObservableType.ONE_WAY_RANGE, reference, body_name, role,
            position_tolerance=1e-7, velocity_tolerance=None,
        )

    def test_transmitter_and_receiver_opposite(self, body_map, link_ends):
        model = create_observation_model(
            link_ends, ObservationSettings(ObservableType.ONE_WAY_RANGE), body_map,
        )
        _, times, states = model.compute_ideal_observation_with_link_end_data(
            TIME, LinkEndType.RECEIVER,
        )
        partial = OneWayRangePartial(link_ends)
        transmitter = partial.wrt_link_end_state(
            LinkEndType.TRANSMITTER, times, states, LinkEndType.RECEIVER,
        )
        receiver = partial.wrt_link_end_state(
            LinkEndType.RECEIVER, times, states, LinkEndType.RECEIVER,
        )
        np.testing.assert_array_equal(transmitter, -receiver)
        # Light-time scaling keeps the gradient close to a unit vector.
        assert np.linalg.norm(receiver[0, :3]) == pytest.approx(1.0, abs=1e-3)


class TestOneWayDopplerPartial:

    @pytest.mark.parametrize("reference,body_name,role", ONE_WAY_CASES)
    def test_against_numerical(self, body_map, link_ends, reference, body_name, role):
        # Link-end times are held fixed analytically; the numerical partial
        # includes the light-time shift, a relative effect of order v / c.
        _compare(
            body_map, link_ends, ObservableType.ONE_WAY_DOPPLER, reference, body_name, role,
            position_tolerance=1e-3, velocity_tolerance=1e-8,
        )

    def test_taylor_order_validated(self, link_ends):
        with pytest.raises(ValueError):
            OneWayDopplerPartial(link_ends, taylor_series_order=0)


class TestAngularPositionPartial:

    @pytest.mark.parametrize("reference,body_name,role", ONE_WAY_CASES)
    def test_against_numerical(self, body_map, link_ends, reference, body_name, role):
        _compare(
            body_map, link_ends, ObservableType.ANGULAR_POSITION, reference, body_name, role,
            position_tolerance=1e-6, velocity_tolerance=None,
        )

    def test_shape(self, link_ends):
        states = (
            np.array([1e11, 0.0, 0.0, 0.0, 3e4, 0.0]),
            np.array([0.0, 2e11, 1e10, -2.4e4, 0.0, 0.0]),
        )
        partial = AngularPositionPartial(link_ends).wrt_link_end_state(
            LinkEndType.RECEIVER, (0.0, 700.0), states, LinkEndType.RECEIVER,
        )
        assert partial.shape == (2, 6)
        np.testing.assert_array_equal(partial[:, 3:], np.zeros((2, 3)))


class TestPositionObservablePartial:

    def test_identity_block(self, body_map):
        link_ends = LinkEnds.of({LinkEndType.OBSERVED_BODY: "Mars"})
        model = create_observation_model(
            link_ends, ObservationSettings(ObservableType.POSITION_OBSERVABLE), body_map,
        )
        _, times, states = model.compute_ideal_observation_with_link_end_data(
            TIME, LinkEndType.OBSERVED_BODY,
        )
        analytic = PositionObservablePartial(link_ends).wrt_link_end_state(
            LinkEndType.OBSERVED_BODY, times, states, LinkEndType.OBSERVED_BODY,
        )
        numerical = calculate_observation_wrt_body_state_partials(
            model, body_map["Mars"], TIME, LinkEndType.OBSERVED_BODY, 1.0e4,
        )
        expected = np.hstack([np.eye(3), np.zeros((3, 3))])
        np.testing.assert_array_equal(analytic, expected)
        np.testing.assert_allclose(numerical, expected, atol=1e-8)


class TestParameterPartials:

    def test_bias_partial_is_identity(self, body_map, link_ends):
        parameter = ConstantObservationBiasParameter(
            link_ends, ObservableType.ANGULAR_POSITION, ConstantObservationBias([0.0, 0.0]),
        )
        partial = create_observation_partial(ObservableType.ANGULAR_POSITION, link_ends)
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.eye(2))

    def test_bias_of_other_link_ends_is_zero(self, link_ends):
        other = LinkEnds.of({LinkEndType.TRANSMITTER: "Mars", LinkEndType.RECEIVER: "Earth"})
        parameter = ConstantObservationBiasParameter(
            other, ObservableType.ONE_WAY_RANGE, ConstantObservationBias([0.0]),
        )
        partial = create_observation_partial(ObservableType.ONE_WAY_RANGE, link_ends)
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros((1, 1)))

    def test_bias_of_other_observable_is_zero(self, link_ends):
        parameter = ConstantObservationBiasParameter(
            link_ends, ObservableType.ONE_WAY_DOPPLER, ConstantObservationBias([0.0]),
        )
        partial = create_observation_partial(ObservableType.ONE_WAY_RANGE, link_ends)
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros((1, 1)))

    def test_unrelated_parameter_is_zero(self, body_map, link_ends):
        partial = create_observation_partial(ObservableType.ONE_WAY_DOPPLER, link_ends)
        parameter = GravitationalParameter(body_map, "Sun")
        np.testing.assert_array_equal(partial.wrt_parameter(parameter), np.zeros((1, 1)))


class TestObservationPartialErrors:

    def test_role_not_in_link_ends(self, link_ends):
        partial = OneWayRangePartial(link_ends)
        states = (np.ones(6), np.full(6, 2.0))
        with pytest.raises(ValueError):
            partial.wrt_link_end_state(
                LinkEndType.OBSERVED_BODY, (0.0, 1.0), states, LinkEndType.RECEIVER,
            )

    def test_invalid_reference(self, link_ends):
        partial = OneWayRangePartial(link_ends)
        states = (np.ones(6), np.full(6, 2.0))
        with pytest.raises(ValueError):
            partial.wrt_link_end_state(
                LinkEndType.RECEIVER, (0.0, 1.0), states, LinkEndType.REFLECTOR,
            )

    def test_wrt_body_state_collects_roles(self, link_ends):
        partial = OneWayRangePartial(link_ends)
        states = (np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0]), np.array([1e9, 0.0, 0.0, 0.0, 0.0, 0.0]))
        blocks = partial.wrt_body_state("Mars", (0.0, 3.3), states, LinkEndType.RECEIVER)
        assert [role for role, _ in blocks] == [LinkEndType.RECEIVER]
        np.testing.assert_array_equal(blocks[0][1], [[1.0, 0.0, 0.0, 0.0, 0.0, 0.0]])
        assert partial.wrt_body_state("Sun", (0.0, 3.3), states, LinkEndType.RECEIVER) == []

    def test_unknown_observable(self, link_ends):
        with pytest.raises(ValueError):
            create_observation_partial("two_way_range", link_ends)

    def test_base_class_is_abstract(self, link_ends):
        with pytest.raises(TypeError):
            ObservationPartial(link_ends)


# ── Domain purity ────────────────────────────────────────────────────

class TestObservationPartialsPurity:

    def test_observation_partials_imports_only_stdlib_numpy_and_domain(self):
        import tracklink.domain.observation_partials as mod

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
