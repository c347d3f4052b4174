from __future__ import annotations
from typing import NamedTuple

import torch
from torch import Tensor


class FieldMetrics(NamedTuple):
    max_intensity: float
    avg_intensity: float
    max_poynting: float
    total_energy: float


@torch.no_grad()
def poynting_magnitude(Ez: Tensor, Hx: Tensor, Hy: Tensor) -> Tensor:
    """|S| ≈ |Ez| * sqrt(Hx^2 + Hy^2) per cell, flattened row-major.

    A magnitude only; the in-plane direction of Ez × H is not returned.
    """
    H_mag = torch.sqrt(Hx * Hx + Hy * Hy)
    return (Ez.abs() * H_mag).reshape(-1)


@torch.no_grad()
def intensity(Ez: Tensor) -> Tensor:
    return (Ez * Ez).reshape(-1)


@torch.no_grad()
def field_metrics(Ez: Tensor, Hx: Tensor, Hy: Tensor) -> FieldMetrics:
    # total_energy is the plain sum of Ez^2, no cell-volume or eps weighting
    I = intensity(Ez).to(torch.float64)
    S = poynting_magnitude(Ez, Hx, Hy).to(torch.float64)
    return FieldMetrics(
        max_intensity=float(I.max().item()),
        avg_intensity=float(I.mean().item()),
        max_poynting=float(S.max().item()),
        total_energy=float(I.sum().item()),
    )


def nonfinite_count(*fields: Tensor) -> int:
    """Number of NaN/Inf entries across the given tensors."""
    return sum(int((~torch.isfinite(f)).sum().item()) for f in fields)
