from __future__ import annotations
import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import ClassVar, Iterable, Optional, Tuple

import numpy as np
import torch
from torch import Tensor

logger = logging.getLogger(__name__)

OMEGA = 2.0 * math.pi

Footprint = Tuple[np.ndarray, np.ndarray, np.ndarray]  # (cols, rows, static weights)


def _single_cell(i: int, j: int, weight: float) -> Footprint:
    return np.array([i]), np.array([j]), np.array([weight], dtype=np.float64)


def _square_offsets(half: int) -> Tuple[np.ndarray, np.ndarray]:
    # (di, dj) over [-half, half]^2, dj-major like a raster scan
    dj, di = np.mgrid[-half:half + 1, -half:half + 1]
    return di.ravel(), dj.ravel()


@dataclass
class Source:
    """Ez excitation anchored at grid cell (floor(x), floor(y)).

    A source contributes ``footprint weights * temporal(t)`` to Ez every
    step. Subclasses fix the spatial pattern; the base class provides the
    sinusoidal carrier sin(2π f t + phase).
    """
    id: str
    x: float
    y: float
    frequency: float   # Hz
    amplitude: float
    phase: float = 0.0  # rad

    kind: ClassVar[str] = ''

    def cell(self) -> Optional[Tuple[int, int]]:
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            return None
        return math.floor(self.x), math.floor(self.y)

    def carrier(self, t: float) -> float:
        with np.errstate(all='ignore'):
            return float(np.sin(OMEGA * self.frequency * t + self.phase))

    def temporal(self, t: float) -> float:
        return self.carrier(t)

    def footprint(self, i: int, j: int) -> Footprint:
        raise NotImplementedError

    def to_dict(self) -> dict:
        d = dataclasses.asdict(self)
        d['kind'] = self.kind
        return d


@dataclass
class DipoleSource(Source):
    kind: ClassVar[str] = 'dipole'

    def footprint(self, i, j):
        return _single_cell(i, j, self.amplitude)


@dataclass
class AntennaSource(DipoleSource):
    kind: ClassVar[str] = 'antenna'


@dataclass
class PlaneWaveSource(DipoleSource):
    # soft point source; no extended wavefront is synthesised
    kind: ClassVar[str] = 'plane-wave'


@dataclass
class GaussianSource(DipoleSource):
    """Sinusoid under exp(-((t - 3/f) f)^2); the envelope width is tied to 1/f."""
    width: Optional[float] = None

    kind: ClassVar[str] = 'gaussian'

    def envelope(self, t: float) -> float:
        with np.errstate(all='ignore'):
            f = np.float64(self.frequency)
            t0 = 3.0 / f
            tau = 1.0 / f
            return float(np.exp(-((t - t0) / tau) ** 2))

    def temporal(self, t):
        return self.envelope(t) * self.carrier(t)


@dataclass
class WireSource(Source):
    length: int = 20
    angle: float = 0.0    # rad, measured from +x
    current: float = 1.0  # A

    kind: ClassVar[str] = 'wire'

    def footprint(self, i, j):
        k = np.arange(self.length, dtype=np.float64)
        cols = np.floor(i + k * math.cos(self.angle)).astype(np.int64)
        rows = np.floor(j + k * math.sin(self.angle)).astype(np.int64)
        weights = np.full(k.shape, self.current * self.amplitude * 0.5)
        return cols, rows, weights


@dataclass
class PointChargeSource(Source):
    charge: float = 1e-9  # C

    kind: ClassVar[str] = 'point-charge'
    reach: ClassVar[int] = 10

    def footprint(self, i, j):
        di, dj = _square_offsets(self.reach)
        r = np.sqrt(di * di + dj * dj) + 1e-6
        weights = (self.charge / (r * r)) * self.amplitude
        return i + di, j + dj, weights


@dataclass
class MagnetSource(Source):
    angle: float = 0.0
    polarity: Optional[str] = None  # 'N-S' gives +1, anything else -1

    kind: ClassVar[str] = 'magnet'
    reach: ClassVar[int] = 15

    def footprint(self, i, j):
        di, dj = _square_offsets(self.reach)
        r = np.sqrt(di * di + dj * dj) + 1e-6
        c, s = math.cos(self.angle), math.sin(self.angle)
        dx_rot = di * c - dj * s
        dy_rot = di * s + dj * c
        sign = 1.0 if self.polarity == 'N-S' else -1.0
        weights = sign * self.amplitude * (3.0 * dx_rot * dy_rot) / r ** 5
        return i + di, j + dj, weights


@dataclass
class CurrentLoopSource(Source):
    radius: float = 10.0  # cells
    current: float = 1.0

    kind: ClassVar[str] = 'current-loop'

    def footprint(self, i, j):
        n = math.floor(2.0 * math.pi * self.radius)
        theta = 2.0 * math.pi * np.arange(n) / max(n, 1)
        cols = np.floor(i + self.radius * np.cos(theta)).astype(np.int64)
        rows = np.floor(j + self.radius * np.sin(theta)).astype(np.int64)
        weights = np.full(theta.shape, self.current * self.amplitude * 0.3)
        return cols, rows, weights


SOURCE_TYPES = {cls.kind: cls for cls in (
    DipoleSource, PlaneWaveSource, AntennaSource, GaussianSource,
    WireSource, PointChargeSource, MagnetSource, CurrentLoopSource,
)}


def source_fields(kind: str) -> set:
    return {f.name for f in dataclasses.fields(SOURCE_TYPES[kind])}


def catalog_aliases(kind: str, fields: dict) -> dict:
    """Map catalog field names onto the variant's own; ``width`` is a loop's radius."""
    if kind == 'current-loop':
        width = fields.pop('width', None)
        if width is not None and 'radius' not in fields:
            fields['radius'] = width
    return fields


def make_source(kind: str, id: str, **fields) -> Source:
    """Build the variant for ``kind`` from a catalog-style record.

    ``width`` is accepted as the loop radius for current loops. Fields the
    variant does not declare are dropped.
    """
    if kind not in SOURCE_TYPES:
        raise ValueError(f'unknown source kind {kind!r}; expected one of {sorted(SOURCE_TYPES)}')
    fields = catalog_aliases(kind, fields)
    accepted = source_fields(kind)
    dropped = sorted(set(fields) - accepted)
    if dropped:
        logger.debug('ignoring fields %s for %s source %s', dropped, kind, id)
    return SOURCE_TYPES[kind](id=id, **{k: v for k, v in fields.items() if k in accepted})


@torch.no_grad()
def inject_sources(Ez: Tensor, sources: Iterable[Source], t: float) -> None:
    """Add every source's contribution at time t into Ez (shape [ny, nx]) in place.

    Sources anchored outside the grid are skipped; footprint cells falling
    outside are clipped. Overlapping contributions accumulate.
    """
    ny, nx = Ez.shape
    for src in sources:
        cell = src.cell()
        if cell is None:
            continue
        i, j = cell
        if not (0 <= i < nx and 0 <= j < ny):
            continue
        cols, rows, weights = src.footprint(i, j)
        keep = (cols >= 0) & (cols < nx) & (rows >= 0) & (rows < ny)
        if not keep.any():
            continue
        with np.errstate(all='ignore'):
            values = weights[keep] * src.temporal(t)
        index = (torch.as_tensor(rows[keep], dtype=torch.long, device=Ez.device),
                 torch.as_tensor(cols[keep], dtype=torch.long, device=Ez.device))
        Ez.index_put_(index, torch.as_tensor(values, dtype=Ez.dtype, device=Ez.device),
                      accumulate=True)
