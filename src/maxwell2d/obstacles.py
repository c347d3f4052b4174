from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import torch

from .grid import Grid, Material


@dataclass
class Obstacle:
    id: str
    x: float       # cells
    y: float
    width: float
    height: float
    material: Material = field(default_factory=Material)

    @staticmethod
    def from_dict(id: str, record: dict) -> "Obstacle":
        mat = record.get('material', {})
        if not isinstance(mat, Material):
            mat = Material(**mat)
        return Obstacle(id=id, x=record['x'], y=record['y'], width=record['width'],
                        height=record['height'], material=mat)


def footprint(grid: Grid, obstacle: Obstacle) -> Optional[Tuple[slice, slice]]:
    """(rows, cols) slices of the cells covered by the obstacle, clipped to the grid.

    Covers [floor(x), floor(x + width)) × [floor(y), floor(y + height)).
    Returns None when nothing of the rectangle lies on the grid.
    """
    x, y, w, h = obstacle.x, obstacle.y, obstacle.width, obstacle.height
    if not all(math.isfinite(v) for v in (x, y, w, h)):
        return None
    i0 = max(math.floor(x), 0)
    i1 = min(math.floor(x + w), grid.nx)
    j0 = max(math.floor(y), 0)
    j1 = min(math.floor(y + h), grid.ny)
    if i0 >= i1 or j0 >= j1:
        return None
    return slice(j0, j1), slice(i0, i1)


@torch.no_grad()
def rasterize(grid: Grid, obstacle: Obstacle) -> int:
    """Overwrite the covered cells with the obstacle material; returns cells touched."""
    area = footprint(grid, obstacle)
    if area is None:
        return 0
    grid.fill_material(*area, obstacle.material)
    return (area[0].stop - area[0].start) * (area[1].stop - area[1].start)


@torch.no_grad()
def erase(grid: Grid, obstacle: Obstacle) -> int:
    """Reset the covered cells to vacuum, regardless of other overlapping obstacles."""
    area = footprint(grid, obstacle)
    if area is None:
        return 0
    grid.reset_materials(*area)
    return (area[0].stop - area[0].start) * (area[1].stop - area[1].start)
