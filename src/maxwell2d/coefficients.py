from __future__ import annotations
import logging
from typing import NamedTuple

import torch
from torch import Tensor

from .grid import EPS0, MU0

logger = logging.getLogger(__name__)


class Coefficients(NamedTuple):
    Ca: Tensor  # Ez self-decay
    Cb: Tensor  # Ez curl drive
    Da: Tensor  # H self-decay
    Db: Tensor  # H curl drive


@torch.no_grad()
def compile_coefficients(eps: Tensor, mu: Tensor, sigma: Tensor, dt: float) -> Coefficients:
    """Per-cell leapfrog update factors for relative eps/mu maps and sigma in S/m.

    Lossy E update (semi-implicit in sigma):
        Ca = (1 - sigma*dt/(2 eps)) / (1 + sigma*dt/(2 eps))
        Cb = (dt/eps) / (1 + sigma*dt/(2 eps))
    Lossless H update: Da = 1, Db = dt/mu.

    Zero permittivity or permeability is not rejected; the affected cells come
    out as inf/NaN (see :func:`degenerate_cells`).
    """
    dtype = eps.dtype
    dt = float(dt)
    eps_abs = eps.to(torch.float64) * EPS0
    mu_abs = mu.to(torch.float64) * MU0
    sig = sigma.to(torch.float64)

    # conductive update factors, as A-/A+ in the plain lossy Yee scheme
    A_plus = 1.0 + (sig * dt) / (2.0 * eps_abs)
    A_minus = 1.0 - (sig * dt) / (2.0 * eps_abs)

    coeffs = Coefficients(
        Ca=(A_minus / A_plus).to(dtype),
        Cb=((dt / eps_abs) / A_plus).to(dtype),
        Da=torch.ones_like(eps),
        Db=(dt / mu_abs).to(dtype),
    )
    bad = int(degenerate_cells(coeffs).sum().item())
    if bad:
        logger.warning('%d cells have non-finite update coefficients (zero epsilon or mu?)', bad)
    return coeffs


def degenerate_cells(coeffs: Coefficients) -> Tensor:
    """Boolean (ny, nx) mask of cells where any coefficient is inf or NaN."""
    mask = torch.zeros_like(coeffs.Ca, dtype=torch.bool)
    for c in coeffs:
        mask |= ~torch.isfinite(c)
    return mask
