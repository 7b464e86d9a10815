# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Observation biases: systematic corrections on top of ideal observables.
"""
from enum import Enum
from typing import Sequence

import numpy as np


class ObservationBiasType(Enum):
    CONSTANT_ADDITIVE = "constant_additive"


class ConstantObservationBias:
    """Constant additive bias: observed = ideal + b."""

    def __init__(self, bias) -> None:
        bias = np.atleast_1d(np.array(bias, dtype=np.float64))
        if bias.ndim != 1:
            raise ValueError(f"Observation bias must be a vector, got shape {bias.shape}")
        self._bias = bias

    @property
    def bias_type(self) -> ObservationBiasType:
        return ObservationBiasType.CONSTANT_ADDITIVE

    @property
    def size(self) -> int:
        return self._bias.shape[0]

    @property
    def bias(self) -> np.ndarray:
        return self._bias.copy()

    def reset_bias(self, bias) -> None:
        bias = np.atleast_1d(np.array(bias, dtype=np.float64))
        if bias.shape != self._bias.shape:
            raise ValueError(
                f"Observation bias size is inconsistent: expected {self._bias.shape[0]}, "
                f"got {bias.shape}"
            )
        self._bias = bias

    def apply(
        self,
        ideal_observation: np.ndarray,
        link_end_times: Sequence[float],
        link_end_states: Sequence[np.ndarray],
    ) -> np.ndarray:
        return ideal_observation + self._bias.astype(ideal_observation.dtype)
