import pytest

from maxwell2d import GridParams
from maxwell2d.grid import C0


def make_params(nx=60, ny=60, dx=1e-3):
    # dt = dx/(2 c0), half the 1D limit and below the 2D Courant bound
    return GridParams(nx=nx, ny=ny, dx=dx, dy=dx, dt=dx / (2 * C0))


@pytest.fixture
def params():
    return make_params()
