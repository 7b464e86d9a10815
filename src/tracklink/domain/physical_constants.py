# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Physical constants for light-time and acceleration computations.

Values follow IAU 2015 / IERS 2010 conventions where applicable.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class _PhysicalConstants:
    """Physical and astronomical constants (SI units)."""
    SPEED_OF_LIGHT: float = 299_792_458.0          # m/s — exact
    ASTRONOMICAL_UNIT: float = 149_597_870_700.0   # m — IAU 2012
    MU_SUN: float = 1.32712440041e20               # m³/s²
    MU_EARTH: float = 3.986004418e14               # m³/s²
    MU_MOON: float = 4.9028e12                     # m³/s²
    R_EARTH: float = 6_378_137.0                   # m — equatorial
    SOLAR_RADIATION_PRESSURE_1AU: float = 4.56e-6  # N/m² at 1 AU
    SECONDS_PER_DAY: float = 86_400.0


PhysicalConstants: _PhysicalConstants = _PhysicalConstants()
