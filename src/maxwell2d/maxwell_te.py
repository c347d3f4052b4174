from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import List

import torch
from torch import Tensor

from .boundary import PMLConfig, apply_pml, pml_thickness, zero_rim
from .coefficients import Coefficients, compile_coefficients, degenerate_cells
from .diagnostics import intensity, nonfinite_count, poynting_magnitude
from .grid import Grid, GridParams
from .obstacles import Obstacle, erase, rasterize
from .sources import (SOURCE_TYPES, Source, catalog_aliases, inject_sources, make_source,
                      source_fields)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSnapshot:
    """Copies of Ez, Hx, Hy (flattened, index j*nx + i) taken after a completed step."""
    Ez: Tensor
    Hx: Tensor
    Hy: Tensor
    step: int
    time: float


@dataclass(frozen=True)
class FieldProbe:
    ez: float = 0.0
    hx: float = 0.0
    hy: float = 0.0

    @property
    def finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.ez, self.hx, self.hy))


class MaxwellTE:
    """2D TE (Ez, Hx, Hy) leapfrog FDTD solver with lossy materials and graded PML.

    Layout: every array is [ny, nx]; flattened snapshots use index j*nx + i
    with i the column (x) and j the row (y).

    The solver never validates materials or the Courant bound: zero epsilon
    gives inf/NaN coefficients and an oversized dt diverges. Use
    :meth:`is_finite` and :meth:`degenerate_cells` to spot either.
    """

    def __init__(self, params: GridParams, pml: PMLConfig = PMLConfig(),
                 device=None, dtype: torch.dtype = torch.float32):
        self.params = params
        self.pml = pml
        self.grid = Grid.vacuum(params, device=device, dtype=dtype)
        self._sources: List[Source] = []
        self._obstacles: List[Obstacle] = []
        self._step = 0

        if params.dt >= params.courant_limit():
            logger.warning('dt=%.3e exceeds the Courant limit %.3e; the scheme will diverge',
                           params.dt, params.courant_limit())
        logger.debug('grid %dx%d dx=%.3e dy=%.3e dt=%.3e pml=%d cells',
                     params.nx, params.ny, params.dx, params.dy, params.dt,
                     pml_thickness(params, pml))
        self._recompile()

    def _recompile(self) -> None:
        # PML grading first: an obstacle may have overwritten sigma inside the band
        apply_pml(self.grid, self.pml)
        g = self.grid
        self.coeffs: Coefficients = compile_coefficients(g.eps, g.mu, g.sigma, self.params.dt)

    # ------------------------------------------------------------------ stepping

    @torch.no_grad()
    def _update_h(self) -> None:
        """H^{n+1/2} from E^n with forward differences; last row/column of Hx/Hy untouched."""
        g, c = self.grid, self.coeffs
        Ez, Hx, Hy = g.Ez, g.Hx, g.Hy
        if g.ny > 1:
            dEz_dy = (Ez[1:, :] - Ez[:-1, :]) / self.params.dy
            Hx[:-1, :] = c.Da[:-1, :] * Hx[:-1, :] - c.Db[:-1, :] * dEz_dy
        if g.nx > 1:
            dEz_dx = (Ez[:, 1:] - Ez[:, :-1]) / self.params.dx
            Hy[:, :-1] = c.Da[:, :-1] * Hy[:, :-1] + c.Db[:, :-1] * dEz_dx

    @torch.no_grad()
    def _update_e(self) -> None:
        """E^{n+1} from H^{n+1/2} with backward differences on i >= 1, j >= 1."""
        g, c = self.grid, self.coeffs
        Ez, Hx, Hy = g.Ez, g.Hx, g.Hy
        if g.nx < 2 or g.ny < 2:
            return
        dHy_dx = (Hy[1:, 1:] - Hy[1:, :-1]) / self.params.dx
        dHx_dy = (Hx[1:, 1:] - Hx[:-1, 1:]) / self.params.dy
        Ez[1:, 1:] = c.Ca[1:, 1:] * Ez[1:, 1:] + c.Cb[1:, 1:] * (dHy_dx - dHx_dy)

    @torch.no_grad()
    def step(self) -> None:
        """One leapfrog step: H update, source injection at t = n*dt, E update, rim clamp."""
        self._update_h()
        inject_sources(self.grid.Ez, self._sources, self._step * self.params.dt)
        self._update_e()
        zero_rim(self.grid.Ez)
        self._step += 1

    def run(self, steps: int) -> None:
        for _ in range(int(steps)):
            self.step()

    def reset(self) -> None:
        """Zero the fields and the clock; sources, obstacles and materials stay."""
        self.grid.zero_fields()
        self._step = 0
        self._recompile()

    # ------------------------------------------------------------------ sources

    def add_source(self, source: Source) -> None:
        self._sources.append(source)
        logger.debug('added %s source %s at (%g, %g)', source.kind, source.id, source.x, source.y)

    def remove_source(self, source_id: str) -> None:
        self._sources = [s for s in self._sources if s.id != source_id]

    def update_source(self, source_id: str, **changes) -> None:
        """Merge ``changes`` into the source with ``source_id``; unknown ids are ignored.

        Passing a different ``kind`` rebuilds the record as that variant in
        the same position, carrying over the fields both variants share.
        """
        for pos, src in enumerate(self._sources):
            if src.id != source_id:
                continue
            kind = changes.pop('kind', src.kind)
            if kind != src.kind:
                if kind not in SOURCE_TYPES:
                    logger.debug('ignoring unknown source kind %r for %s', kind, source_id)
                    return
                merged = {k: v for k, v in src.to_dict().items() if k not in ('kind', 'id')}
                merged.update(changes)
                self._sources[pos] = make_source(kind, source_id, **merged)
                return
            declared = source_fields(src.kind)
            for name, value in catalog_aliases(src.kind, changes).items():
                if name in declared:
                    setattr(src, name, value)
                else:
                    logger.debug('ignoring field %r for %s source %s', name, src.kind, source_id)
            return

    def get_sources(self) -> List[Source]:
        return list(self._sources)

    # ------------------------------------------------------------------ obstacles

    def add_obstacle(self, obstacle: Obstacle) -> None:
        self._obstacles.append(obstacle)
        cells = rasterize(self.grid, obstacle)
        logger.debug('added obstacle %s covering %d cells', obstacle.id, cells)
        self._recompile()

    def remove_obstacle(self, obstacle_id: str) -> None:
        obstacle = next((o for o in self._obstacles if o.id == obstacle_id), None)
        if obstacle is None:
            return
        erase(self.grid, obstacle)
        self._obstacles = [o for o in self._obstacles if o.id != obstacle_id]
        logger.debug('removed obstacle %s', obstacle_id)
        self._recompile()

    def get_obstacles(self) -> List[Obstacle]:
        return list(self._obstacles)

    # ------------------------------------------------------------------ readers

    def get_fields(self) -> FieldSnapshot:
        g = self.grid
        return FieldSnapshot(
            Ez=g.Ez.detach().reshape(-1).clone(),
            Hx=g.Hx.detach().reshape(-1).clone(),
            Hy=g.Hy.detach().reshape(-1).clone(),
            step=self._step,
            time=self.get_time(),
        )

    def get_field_at(self, x: float, y: float) -> FieldProbe:
        """Field values at cell (floor(x), floor(y)); zeros when that cell does not exist."""
        if not (math.isfinite(x) and math.isfinite(y)):
            return FieldProbe()
        i, j = math.floor(x), math.floor(y)
        if not self.grid.contains(i, j):
            return FieldProbe()
        g = self.grid
        return FieldProbe(ez=float(g.Ez[j, i]), hx=float(g.Hx[j, i]), hy=float(g.Hy[j, i]))

    def get_poynting_vector(self) -> Tensor:
        g = self.grid
        return poynting_magnitude(g.Ez, g.Hx, g.Hy)

    def get_intensity(self) -> Tensor:
        return intensity(self.grid.Ez)

    def get_params(self) -> GridParams:
        return self.params

    def get_time(self) -> float:
        return self._step * self.params.dt

    @property
    def step_count(self) -> int:
        return self._step

    def get_materials(self) -> dict:
        g = self.grid
        return {'eps': g.eps.clone(), 'mu': g.mu.clone(), 'sigma': g.sigma.clone()}

    def get_coefficients(self) -> Coefficients:
        return Coefficients(*(c.clone() for c in self.coeffs))

    # ------------------------------------------------------------------ debugging aids

    def degenerate_cells(self) -> Tensor:
        return degenerate_cells(self.coeffs)

    def is_finite(self) -> bool:
        g = self.grid
        return nonfinite_count(g.Ez, g.Hx, g.Hy) == 0
