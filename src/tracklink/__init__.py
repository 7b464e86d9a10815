# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Tracklink

Light-time solutions, observation models and partial derivatives for
orbit determination. Includes iterative light-time calculation with
relativistic corrections, one-way range, Doppler, angular position and
position observables with biases, analytic acceleration partials with
central-difference verification, observation partials, and batch
least-squares estimation.
"""

from tracklink.domain.physical_constants import PhysicalConstants
from tracklink.domain.link_ends import (
    LinkEndType,
    ObservableType,
    LinkEndId,
    LinkEnds,
    observable_name,
    observable_type_from_name,
    observable_size,
    link_end_index,
    validate_link_ends,
)
from tracklink.domain.ephemerides import (
    ConstantEphemeris,
    KeplerEphemeris,
    cartesian_to_kepler,
    kepler_to_cartesian,
    propagate_kepler_orbit,
)
from tracklink.domain.bodies import (
    ExponentialAtmosphere,
    AerodynamicProperties,
    RadiationPressureProperties,
    Body,
    BodyMap,
)
from tracklink.domain.light_time import (
    LightTimeFailureHandling,
    LightTimeConvergenceError,
    LightTimeConvergenceCriteria,
    LightTimeSolution,
    LightTimeCalculator,
    FirstOrderRelativisticCorrection,
)
from tracklink.domain.observation_bias import (
    ObservationBiasType,
    ConstantObservationBias,
)
from tracklink.domain.observation_models import (
    ObservationModel,
    OneWayRangeObservationModel,
    SimplifiedOneWayDopplerObservationModel,
    AngularPositionObservationModel,
    PositionObservationModel,
)
from tracklink.domain.observation_setup import (
    FirstOrderRelativisticLightTimeCorrectionSettings,
    ConstantObservationBiasSettings,
    ObservationSettings,
    create_light_time_calculator,
    create_observation_bias,
    create_observation_model,
    SimulatedObservation,
    ObservationSimulator,
    create_observation_simulator,
)
from tracklink.domain.acceleration_models import (
    AccelerationType,
    CentralGravityAcceleration,
    ThirdBodyCentralGravityAcceleration,
    CannonballRadiationPressureAcceleration,
    AerodynamicDragAcceleration,
)
from tracklink.domain.estimatable_parameters import (
    EstimatableParameterType,
    EstimatableParameter,
    GravitationalParameter,
    ConstantDragCoefficient,
    RadiationPressureCoefficient,
    ConstantObservationBiasParameter,
    InitialTranslationalState,
    EstimatableParameterSet,
)
from tracklink.domain.acceleration_partials import (
    AccelerationPartial,
    CentralGravityPartial,
    ThirdBodyCentralGravityPartial,
    CannonballRadiationPressurePartial,
    AerodynamicDragPartial,
    create_acceleration_partial,
)
from tracklink.domain.numerical_partials import (
    calculate_acceleration_wrt_state_partials,
    calculate_acceleration_wrt_parameter_partials,
    calculate_observation_wrt_body_state_partials,
)
from tracklink.domain.observation_partials import (
    ObservationPartial,
    OneWayRangePartial,
    OneWayDopplerPartial,
    AngularPositionPartial,
    PositionObservablePartial,
    create_observation_partial,
)
from tracklink.domain.estimation import (
    KeplerStateTransitionInterface,
    ObservationSet,
    ObservationManager,
    EstimationConvergenceChecker,
    EstimationInput,
    EstimationOutput,
    OrbitDeterminationManager,
)

__all__ = [
    "PhysicalConstants",
    "LinkEndType",
    "ObservableType",
    "LinkEndId",
    "LinkEnds",
    "observable_name",
    "observable_type_from_name",
    "observable_size",
    "link_end_index",
    "validate_link_ends",
    "ConstantEphemeris",
    "KeplerEphemeris",
    "cartesian_to_kepler",
    "kepler_to_cartesian",
    "propagate_kepler_orbit",
    "ExponentialAtmosphere",
    "AerodynamicProperties",
    "RadiationPressureProperties",
    "Body",
    "BodyMap",
    "LightTimeFailureHandling",
    "LightTimeConvergenceError",
    "LightTimeConvergenceCriteria",
    "LightTimeSolution",
    "LightTimeCalculator",
    "FirstOrderRelativisticCorrection",
    "ObservationBiasType",
    "ConstantObservationBias",
    "ObservationModel",
    "OneWayRangeObservationModel",
    "SimplifiedOneWayDopplerObservationModel",
    "AngularPositionObservationModel",
    "PositionObservationModel",
    "FirstOrderRelativisticLightTimeCorrectionSettings",
    "ConstantObservationBiasSettings",
    "ObservationSettings",
    "create_light_time_calculator",
    "create_observation_bias",
    "create_observation_model",
    "SimulatedObservation",
    "ObservationSimulator",
    "create_observation_simulator",
    "AccelerationType",
    "CentralGravityAcceleration",
    "ThirdBodyCentralGravityAcceleration",
    "CannonballRadiationPressureAcceleration",
    "AerodynamicDragAcceleration",
    "EstimatableParameterType",
    "EstimatableParameter",
    "GravitationalParameter",
    "ConstantDragCoefficient",
    "RadiationPressureCoefficient",
    "ConstantObservationBiasParameter",
    "InitialTranslationalState",
    "EstimatableParameterSet",
    "AccelerationPartial",
    "CentralGravityPartial",
    "ThirdBodyCentralGravityPartial",
    "CannonballRadiationPressurePartial",
    "AerodynamicDragPartial",
    "create_acceleration_partial",
    "calculate_acceleration_wrt_state_partials",
    "calculate_acceleration_wrt_parameter_partials",
    "calculate_observation_wrt_body_state_partials",
    "ObservationPartial",
    "OneWayRangePartial",
    "OneWayDopplerPartial",
    "AngularPositionPartial",
    "PositionObservablePartial",
    "create_observation_partial",
    "KeplerStateTransitionInterface",
    "ObservationSet",
    "ObservationManager",
    "EstimationConvergenceChecker",
    "EstimationInput",
    "EstimationOutput",
    "OrbitDeterminationManager",
]
