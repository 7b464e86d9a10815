# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Creation of observation models from settings.

Settings are frozen dataclasses; create_observation_model validates the
link ends against the observable type and builds the light-time
calculator, corrections and bias. Model creators are kept in a table
keyed by ObservableType, so new observables register a creator instead
of extending a switch.
"""
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from tracklink.domain.bodies import BodyMap
from tracklink.domain.light_time import (
    FirstOrderRelativisticCorrection,
    LightTimeCalculator,
    LightTimeConvergenceCriteria,
)
from tracklink.domain.link_ends import (
    LinkEndId,
    LinkEnds,
    LinkEndType,
    ObservableType,
    observable_name,
    observable_size,
    validate_link_ends,
)
from tracklink.domain.observation_bias import ConstantObservationBias, ObservationBiasType
from tracklink.domain.observation_models import (
    AngularPositionObservationModel,
    ObservationModel,
    OneWayRangeObservationModel,
    PositionObservationModel,
    SimplifiedOneWayDopplerObservationModel,
)
from tracklink.ports import LightTimeCorrection, ObservationBias


# --- Settings ---

@dataclass(frozen=True)
class FirstOrderRelativisticLightTimeCorrectionSettings:
    """Shapiro delay due to the named perturbing bodies."""
    perturbing_bodies: tuple[str, ...]
    ppn_gamma: float = 1.0


@dataclass(frozen=True)
class ConstantObservationBiasSettings:
    """Constant additive bias; its size must match the observable."""
    bias: tuple[float, ...]

    @property
    def bias_type(self) -> ObservationBiasType:
        return ObservationBiasType.CONSTANT_ADDITIVE


@dataclass(frozen=True)
class ObservationSettings:
    """Settings for one observation model.

    Attributes:
        observable_type: Observable to create.
        light_time_corrections: Ordered correction settings (may be empty).
        bias_settings: Optional bias settings.
        convergence_criteria: Light-time iteration settings.
        taylor_series_order: Doppler Taylor expansion order (Doppler only).
        scalar_type: Scalar type of the light-time solution.
    """
    observable_type: ObservableType
    light_time_corrections: tuple[FirstOrderRelativisticLightTimeCorrectionSettings, ...] = ()
    bias_settings: ConstantObservationBiasSettings | None = None
    convergence_criteria: LightTimeConvergenceCriteria | None = None
    taylor_series_order: int = 3
    scalar_type: type = np.float64


# --- Factories ---

def link_end_state_function(link_end: LinkEndId, body_map: BodyMap) -> Callable[[float], np.ndarray]:
    """State function of a link end: body ephemeris plus reference-point offset."""
    body = body_map[link_end.body_name]
    if not link_end.reference_point:
        return body.state_from_ephemeris
    offset = body.reference_point_offset(link_end.reference_point)

    def state_function(time: float) -> np.ndarray:
        state = body.state_from_ephemeris(time)
        state[:3] += offset
        return state

    return state_function


def create_light_time_corrections(
    correction_settings: Sequence[FirstOrderRelativisticLightTimeCorrectionSettings],
    body_map: BodyMap,
) -> list[LightTimeCorrection]:
    corrections: list[LightTimeCorrection] = []
    for settings in correction_settings:
        if not isinstance(settings, FirstOrderRelativisticLightTimeCorrectionSettings):
            raise ValueError(f"Light-time correction settings not recognized: {settings!r}")
        perturbers = []
        for name in settings.perturbing_bodies:
            body = body_map[name]
            perturbers.append((body.gravitational_parameter, body.state_from_ephemeris))
        corrections.append(FirstOrderRelativisticCorrection(perturbers, settings.ppn_gamma))
    return corrections


def create_light_time_calculator(
    transmitter: LinkEndId,
    receiver: LinkEndId,
    body_map: BodyMap,
    correction_settings: Sequence[FirstOrderRelativisticLightTimeCorrectionSettings] = (),
    convergence_criteria: LightTimeConvergenceCriteria | None = None,
    scalar_type: type = np.float64,
) -> LightTimeCalculator:
    return LightTimeCalculator(
        transmitter_state_function=link_end_state_function(transmitter, body_map),
        receiver_state_function=link_end_state_function(receiver, body_map),
        corrections=create_light_time_corrections(correction_settings, body_map),
        convergence_criteria=convergence_criteria,
        scalar_type=scalar_type,
    )


def create_observation_bias(
    bias_settings: ConstantObservationBiasSettings,
    observation_size: int,
) -> ObservationBias:
    """Create a bias model, checking it against the observable size.

    Raises:
        ValueError: On unknown settings or a size mismatch.
    """
    if not isinstance(bias_settings, ConstantObservationBiasSettings):
        raise ValueError(f"Observation bias type not recognized: {bias_settings!r}")
    if len(bias_settings.bias) != observation_size:
        raise ValueError(
            "Error when making constant observation bias, bias size is inconsistent: "
            f"expected {observation_size}, got {len(bias_settings.bias)}"
        )
    return ConstantObservationBias(bias_settings.bias)


ObservationModelCreator = Callable[
    [LinkEnds, ObservationSettings, BodyMap, "ObservationBias | None"], ObservationModel
]

_OBSERVATION_MODEL_CREATORS: dict[ObservableType, ObservationModelCreator] = {}


def register_observation_model_creator(observable_type: ObservableType):
    """Decorator registering a creator for an observable type."""
    def decorator(creator: ObservationModelCreator) -> ObservationModelCreator:
        _OBSERVATION_MODEL_CREATORS[observable_type] = creator
        return creator
    return decorator


def _one_way_light_time_calculator(link_ends, settings, body_map) -> LightTimeCalculator:
    return create_light_time_calculator(
        link_ends[LinkEndType.TRANSMITTER],
        link_ends[LinkEndType.RECEIVER],
        body_map,
        settings.light_time_corrections,
        settings.convergence_criteria,
        settings.scalar_type,
    )


@register_observation_model_creator(ObservableType.ONE_WAY_RANGE)
def _create_one_way_range(link_ends, settings, body_map, bias):
    return OneWayRangeObservationModel(
        _one_way_light_time_calculator(link_ends, settings, body_map), bias,
    )


@register_observation_model_creator(ObservableType.ONE_WAY_DOPPLER)
def _create_one_way_doppler(link_ends, settings, body_map, bias):
    return SimplifiedOneWayDopplerObservationModel(
        _one_way_light_time_calculator(link_ends, settings, body_map),
        bias,
        settings.taylor_series_order,
    )


@register_observation_model_creator(ObservableType.ANGULAR_POSITION)
def _create_angular_position(link_ends, settings, body_map, bias):
    return AngularPositionObservationModel(
        _one_way_light_time_calculator(link_ends, settings, body_map), bias,
    )


@register_observation_model_creator(ObservableType.POSITION_OBSERVABLE)
def _create_position(link_ends, settings, body_map, bias):
    if settings.light_time_corrections:
        raise ValueError("Error when making position observable model, found light time corrections")
    observed = link_ends[LinkEndType.OBSERVED_BODY]
    if observed.reference_point:
        raise ValueError("Error, cannot create position observable for a reference point")
    return PositionObservationModel(body_map[observed.body_name].state_from_ephemeris, bias)


def create_observation_model(
    link_ends: LinkEnds,
    settings: ObservationSettings,
    body_map: BodyMap,
) -> ObservationModel:
    """Create and validate an observation model.

    Raises:
        ValueError: For an unregistered observable, link ends that do not
            match the observable, or inconsistent bias/correction settings.
    """
    creator = _OBSERVATION_MODEL_CREATORS.get(settings.observable_type)
    if creator is None:
        raise ValueError(f"Observable {settings.observable_type!r} not recognized")
    validate_link_ends(settings.observable_type, link_ends)
    bias = None
    if settings.bias_settings is not None:
        bias = create_observation_bias(
            settings.bias_settings, observable_size(settings.observable_type),
        )
    return creator(link_ends, settings, body_map, bias)


# --- Simulation ---

@dataclass(frozen=True)
class SimulatedObservation:
    """One simulated observation with the link-end data it was built from."""
    observable_type: ObservableType
    link_ends: LinkEnds
    time: float
    reference_link_end: LinkEndType
    value: np.ndarray
    link_end_times: tuple[float, ...]
    link_end_states: tuple[np.ndarray, ...]


class ObservationSimulator:
    """Observation models of one observable type, one per LinkEnds."""

    def __init__(
        self,
        observable_type: ObservableType,
        observation_models: dict[LinkEnds, ObservationModel],
    ) -> None:
        for link_ends, model in observation_models.items():
            if model.observable_type is not observable_type:
                raise ValueError(
                    f"Model for {link_ends} computes {model.observable_type.value}, "
                    f"expected {observable_type.value}"
                )
        self._observable_type = observable_type
        self._observation_models = dict(observation_models)

    @property
    def observable_type(self) -> ObservableType:
        return self._observable_type

    @property
    def observation_models(self) -> dict[LinkEnds, ObservationModel]:
        return dict(self._observation_models)

    def observation_model(self, link_ends: LinkEnds) -> ObservationModel:
        try:
            return self._observation_models[link_ends]
        except KeyError:
            raise ValueError(
                f"No {observable_name(self._observable_type)} model for link ends {link_ends}"
            ) from None

    def simulate_observations(
        self,
        link_ends: LinkEnds,
        times: Sequence[float],
        reference_link_end: LinkEndType,
    ) -> list[SimulatedObservation]:
        """Simulate biased observations at the given times."""
        model = self.observation_model(link_ends)
        simulated = []
        for time in times:
            value, link_end_times, link_end_states = model.compute_observation_with_link_end_data(
                time, reference_link_end,
            )
            simulated.append(SimulatedObservation(
                observable_type=self._observable_type,
                link_ends=link_ends,
                time=float(time),
                reference_link_end=reference_link_end,
                value=np.asarray(value, dtype=np.float64),
                link_end_times=link_end_times,
                link_end_states=link_end_states,
            ))
        return simulated


def create_observation_simulator(
    observable_type: ObservableType,
    settings_per_link_ends: dict[LinkEnds, ObservationSettings],
    body_map: BodyMap,
) -> ObservationSimulator:
    models = {}
    for link_ends, settings in settings_per_link_ends.items():
        if settings.observable_type is not observable_type:
            raise ValueError(
                f"Settings for {link_ends} are for {settings.observable_type.value}, "
                f"expected {observable_type.value}"
            )
        models[link_ends] = create_observation_model(link_ends, settings, body_map)
    return ObservationSimulator(observable_type, models)
