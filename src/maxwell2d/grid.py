from __future__ import annotations
import math
import numbers
from dataclasses import dataclass

import numpy as np
import torch

C0 = 299_792_458.0          # speed of light (m/s)
EPS0 = 8.854187817e-12      # vacuum permittivity (F/m)
MU0 = 4 * math.pi * 1e-7    # vacuum permeability (H/m)


@dataclass(frozen=True)
class GridParams:
    nx: int     # cells along x (columns)
    ny: int     # cells along y (rows)
    dx: float   # spatial step (m)
    dy: float
    dt: float   # time step (s)

    def __post_init__(self):
        for n in (self.nx, self.ny):
            if isinstance(n, bool) or not isinstance(n, numbers.Integral) or n <= 0:
                raise ValueError(f'nx, ny must be positive integers, got ({self.nx!r}, {self.ny!r})')
        if not (self.dx > 0 and self.dy > 0 and self.dt > 0):
            raise ValueError(f'dx, dy, dt must be positive, got ({self.dx}, {self.dy}, {self.dt})')

    @property
    def size(self) -> int:
        return self.nx * self.ny

    def courant_limit(self) -> float:
        """Largest stable dt for the 2D leapfrog scheme: min(dx, dy)/(c0*sqrt(2))."""
        return min(self.dx, self.dy) / (C0 * math.sqrt(2.0))

    def courant_number(self) -> float:
        return self.dt / self.courant_limit()

    @staticmethod
    def for_frequency(frequency: float = 5e9, points_per_wavelength: int = 20,
                      nx: int = 200, ny: int = 150, courant: float = 0.5) -> "GridParams":
        # square cells, dt = courant * dx / c0 (0.5 gives dx/(2 c0))
        wavelength = C0 / frequency
        dx = wavelength / points_per_wavelength
        return GridParams(nx=nx, ny=ny, dx=dx, dy=dx, dt=courant * dx / C0)


@dataclass
class Material:
    epsilon: float = 1.0  # relative permittivity (may be negative or zero)
    mu: float = 1.0       # relative permeability
    sigma: float = 0.0    # electric conductivity (S/m)


VACUUM = Material(1.0, 1.0, 0.0)


class Grid:
    """
    Field and material state of an nx × ny TE grid.

    Every array has shape (ny, nx), so ``array.reshape(-1)[j*nx + i]`` is the
    cell at column i, row j. Ez, Hx, Hy start at zero; eps, mu, sigma start at
    vacuum (relative values, sigma in S/m).
    """
    def __init__(self, params: GridParams, eps_map: np.ndarray, mu_map: np.ndarray,
                 sigma_map: np.ndarray, device=None, dtype: torch.dtype = torch.float32):
        shape = (params.ny, params.nx)
        assert eps_map.shape == shape
        assert mu_map.shape == shape
        assert sigma_map.shape == shape
        self.params = params
        self.nx = params.nx
        self.ny = params.ny
        self.dtype = dtype
        self.device = torch.device(device) if device is not None else torch.device('cpu')

        self.eps = torch.as_tensor(eps_map, dtype=dtype, device=self.device).clone()
        self.mu = torch.as_tensor(mu_map, dtype=dtype, device=self.device).clone()
        self.sigma = torch.as_tensor(sigma_map, dtype=dtype, device=self.device).clone()

        # Yee staggering is implicit: Hx sits half a cell up in y, Hy half a cell right in x.
        self.Ez = torch.zeros(shape, dtype=dtype, device=self.device)
        self.Hx = torch.zeros(shape, dtype=dtype, device=self.device)
        self.Hy = torch.zeros(shape, dtype=dtype, device=self.device)

    @staticmethod
    def homogeneous(params: GridParams, material: Material, device=None,
                    dtype: torch.dtype = torch.float32) -> "Grid":
        shape = (params.ny, params.nx)
        eps_map = np.full(shape, material.epsilon, dtype=np.float64)
        mu_map = np.full(shape, material.mu, dtype=np.float64)
        sigma_map = np.full(shape, material.sigma, dtype=np.float64)
        return Grid(params, eps_map, mu_map, sigma_map, device=device, dtype=dtype)

    @staticmethod
    def vacuum(params: GridParams, device=None, dtype: torch.dtype = torch.float32) -> "Grid":
        return Grid.homogeneous(params, VACUUM, device=device, dtype=dtype)

    def contains(self, i: int, j: int) -> bool:
        return 0 <= i < self.nx and 0 <= j < self.ny

    def zero_fields(self) -> None:
        self.Ez.zero_()
        self.Hx.zero_()
        self.Hy.zero_()

    def fill_material(self, rows: slice, cols: slice, material: Material) -> None:
        self.eps[rows, cols] = material.epsilon
        self.mu[rows, cols] = material.mu
        self.sigma[rows, cols] = material.sigma

    def reset_materials(self, rows: slice = slice(None), cols: slice = slice(None)) -> None:
        """Return eps, mu, sigma to vacuum, over the whole grid by default."""
        self.fill_material(rows, cols, VACUUM)
