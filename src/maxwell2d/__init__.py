__all__ = [
    "MaxwellTE",
    "FieldSnapshot",
    "FieldProbe",
    "Grid",
    "GridParams",
    "Material",
    "VACUUM",
    "PMLConfig",
    "Obstacle",
    "Source",
    "DipoleSource",
    "AntennaSource",
    "PlaneWaveSource",
    "GaussianSource",
    "WireSource",
    "PointChargeSource",
    "MagnetSource",
    "CurrentLoopSource",
    "make_source",
    "FieldMetrics",
    "field_metrics",
]

from .grid import Grid, GridParams, Material, VACUUM
from .boundary import PMLConfig
from .obstacles import Obstacle
from .sources import (
    Source, DipoleSource, AntennaSource, PlaneWaveSource, GaussianSource,
    WireSource, PointChargeSource, MagnetSource, CurrentLoopSource, make_source,
)
from .diagnostics import FieldMetrics, field_metrics
from .maxwell_te import MaxwellTE, FieldSnapshot, FieldProbe
