from __future__ import annotations
import logging
import math
from dataclasses import dataclass

import torch
from torch import Tensor

from .grid import EPS0, MU0, Grid, GridParams

logger = logging.getLogger(__name__)

ETA0 = math.sqrt(MU0 / EPS0)  # free-space impedance (ohm)


@dataclass(frozen=True)
class PMLConfig:
    thickness: int = 20        # requested band width in cells, capped at min(nx, ny)//4
    order: int = 3             # polynomial grading order m
    reflection: float = 1e-6   # target normal-incidence reflection R


def pml_thickness(params: GridParams, config: PMLConfig) -> int:
    return min(int(config.thickness), min(params.nx, params.ny) // 4)


def _edge_profile(n: int, thickness: int, sigma_max: float, order: int) -> Tensor:
    # d = distance in cells from the nearest edge along this axis, 0 at the rim
    idx = torch.arange(n, dtype=torch.float64)
    d = torch.minimum(idx, (n - 1) - idx)
    ratio = ((thickness - d) / thickness).clamp(min=0.0)
    return torch.where(d < thickness, sigma_max * ratio ** order, torch.zeros_like(ratio))


def pml_conductivity(params: GridParams, config: PMLConfig = PMLConfig()) -> Tensor:
    """Graded loss overlay, shape (ny, nx), float64, zero outside the band.

    sigma_max = -(m+1) ln(R) / (2 eta0 T delta) per axis; a cell at distance d
    from an edge gets sigma_max ((T-d)/T)^m, and x/y contributions add in the
    corners.
    """
    T = pml_thickness(params, config)
    if T <= 0:
        return torch.zeros((params.ny, params.nx), dtype=torch.float64)
    m = config.order
    sigma_max_x = -(m + 1) * math.log(config.reflection) / (2.0 * ETA0 * T * params.dx)
    sigma_max_y = -(m + 1) * math.log(config.reflection) / (2.0 * ETA0 * T * params.dy)

    sigma_x = _edge_profile(params.nx, T, sigma_max_x, m)  # varies along columns
    sigma_y = _edge_profile(params.ny, T, sigma_max_y, m)  # varies along rows
    return sigma_y[:, None] + sigma_x[None, :]


@torch.no_grad()
def apply_pml(grid: Grid, config: PMLConfig = PMLConfig()) -> None:
    """Raise grid.sigma to the PML overlay wherever the overlay is larger.

    Never lowers an existing conductivity, so a lossy obstacle keeps its own
    sigma if it exceeds the local grading.
    """
    overlay = pml_conductivity(grid.params, config).to(device=grid.device)
    current = grid.sigma.to(torch.float64)
    merged = torch.where(overlay > 0, torch.maximum(current, overlay), current)
    grid.sigma.copy_(merged.to(grid.dtype))


@torch.no_grad()
def zero_rim(field: Tensor) -> Tensor:
    # outermost row and column on all four sides
    field[0, :] = 0.0
    field[-1, :] = 0.0
    field[:, 0] = 0.0
    field[:, -1] = 0.0
    return field
