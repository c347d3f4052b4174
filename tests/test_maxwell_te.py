"""
End-to-end behaviour of the TE leapfrog solver.
"""

import logging
import math

import pytest
import torch

from maxwell2d import (
    CurrentLoopSource, DipoleSource, GaussianSource, GridParams, Material, MaxwellTE, Obstacle,
    PMLConfig, make_source,
)
from maxwell2d.grid import C0
from maxwell2d.sources import SOURCE_TYPES

from conftest import make_params


def _all_kinds(x=30, y=30):
    return [make_source(kind, f"s{n}", x=x + n, y=y - n, frequency=3e9, amplitude=1.0, phase=0.3)
            for n, kind in enumerate(sorted(SOURCE_TYPES))]


def _rim(ez):
    return torch.cat([ez[0], ez[-1], ez[:, 0], ez[:, -1]])


def test_construction_grades_pml_and_compiles(params):
    solver = MaxwellTE(params)

    sigma = solver.get_materials()["sigma"]
    assert float(sigma[30, 0]) > 0
    assert float(sigma[30, 30]) == 0
    c = solver.get_coefficients()
    assert float(c.Ca[30, 30]) == 1.0
    assert float(c.Ca[30, 0]) < 1.0
    assert solver.get_time() == 0.0


def test_vacuum_stays_quiet(params):
    solver = MaxwellTE(params)
    solver.run(50)

    f = solver.get_fields()
    assert torch.all(f.Ez == 0) and torch.all(f.Hx == 0) and torch.all(f.Hy == 0)


def test_single_dipole_first_injection(params):
    """Injection at step n uses t = n*dt: zero at step 0, A*sin(2π f dt) after step 1."""
    A, f = 1.5, 1e9
    solver = MaxwellTE(params)
    solver.add_source(DipoleSource(id="d", x=30, y=30, frequency=f, amplitude=A, phase=0.0))

    solver.step()
    assert solver.get_field_at(30, 30).ez == 0.0

    solver.step()
    probe = solver.get_field_at(30.9, 30.4)
    assert probe.ez == pytest.approx(A * math.sin(2 * math.pi * f * params.dt), rel=1e-5)
    # nothing has propagated to the neighbours yet
    assert solver.get_field_at(31, 30).ez == 0.0
    assert solver.get_field_at(30, 31).ez == 0.0


def test_single_dipole_with_phase(params):
    solver = MaxwellTE(params)
    solver.add_source(DipoleSource(id="d", x=30, y=30, frequency=1e9, amplitude=2.0, phase=math.pi / 2))
    solver.step()

    assert solver.get_field_at(30, 30).ez == pytest.approx(2.0)


def test_fields_propagate_from_source(params):
    solver = MaxwellTE(params)
    solver.add_source(DipoleSource(id="d", x=30, y=30, frequency=5e9, amplitude=1.0, phase=math.pi / 2))
    solver.run(10)

    assert solver.get_field_at(33, 30).ez != 0.0
    assert solver.get_field_at(30, 30).hx != 0.0 or solver.get_field_at(30, 29).hx != 0.0
    assert solver.get_field_at(29, 30).hy != 0.0


def test_deterministic_runs(params):
    runs = []
    for _ in range(2):
        solver = MaxwellTE(params)
        for src in _all_kinds():
            solver.add_source(src)
        solver.add_obstacle(Obstacle(id="o", x=40, y=35, width=6, height=8, material=Material(3.0, 1.0, 0.1)))
        solver.run(40)
        runs.append(solver.get_fields())

    a, b = runs
    assert torch.equal(a.Ez, b.Ez)
    assert torch.equal(a.Hx, b.Hx)
    assert torch.equal(a.Hy, b.Hy)


def test_rim_is_clamped_every_step(params):
    solver = MaxwellTE(params)
    solver.add_source(DipoleSource(id="edge", x=0, y=10, frequency=5e9, amplitude=1.0, phase=math.pi / 2))
    solver.add_source(make_source("point-charge", "q", x=2, y=2, frequency=5e9, amplitude=1.0))
    solver.add_source(make_source("wire", "w", x=5, y=59, frequency=5e9, amplitude=1.0, phase=1.0))
    for _ in range(25):
        solver.step()
        assert torch.all(_rim(solver.grid.Ez) == 0)


def test_obstacle_add_remove_restores_vacuum(params):
    pristine = MaxwellTE(params)
    solver = MaxwellTE(params)
    inner = Obstacle(id="inner", x=25, y=25, width=10, height=6, material=Material(5.0, 2.0, 1e3))
    edge = Obstacle(id="edge", x=-2, y=20, width=8, height=10, material=Material(2.0, 1.0, 0.0))

    solver.add_obstacle(inner)
    solver.add_obstacle(edge)
    assert float(solver.get_materials()["eps"][27, 27]) == 5.0
    solver.remove_obstacle("inner")
    solver.remove_obstacle("edge")

    m, m0 = solver.get_materials(), pristine.get_materials()
    for name in ("eps", "mu", "sigma"):
        assert torch.equal(m[name], m0[name])
    for c, c0 in zip(solver.get_coefficients(), pristine.get_coefficients()):
        assert torch.equal(c, c0)
    assert solver.get_obstacles() == []


def test_pml_regraded_over_obstacle_in_band(params):
    """An obstacle with low sigma inside the band does not erase the grading."""
    solver = MaxwellTE(params)
    before = solver.get_materials()["sigma"][30, 2].item()
    solver.add_obstacle(Obstacle(id="o", x=0, y=25, width=5, height=10, material=Material(2.0, 1.0, 0.0)))

    m = solver.get_materials()
    assert m["sigma"][30, 2].item() == before
    assert m["eps"][30, 2].item() == 2.0


def test_remove_unknown_obstacle_is_noop(params):
    solver = MaxwellTE(params)
    ob = Obstacle(id="o", x=20, y=20, width=4, height=4, material=Material(3.0, 1.0, 0.0))
    solver.add_obstacle(ob)
    before = solver.get_materials()

    solver.remove_obstacle("missing")

    assert solver.get_obstacles() == [ob]
    assert torch.equal(before["eps"], solver.get_materials()["eps"])


def test_conductor_shields_interior():
    """A sigma = 1e7 block keeps Ez near zero where a vacuum run carries the wave."""
    p = make_params(nx=120, ny=120)
    f = C0 / (20 * p.dx)  # 20 cells per wavelength

    def run(material):
        solver = MaxwellTE(p)
        solver.add_source(DipoleSource(id="d", x=30, y=60, frequency=f, amplitude=1.0))
        solver.add_obstacle(Obstacle(id="block", x=70, y=45, width=25, height=30, material=material))
        solver.run(300)
        ez = solver.grid.Ez
        return float((ez[50:70, 75:90] ** 2).sum())

    vacuum = run(Material(1.0, 1.0, 0.0))
    shielded = run(Material(1.0, 1.0, 1e7))

    assert vacuum > 0
    assert shielded < 1e-2 * vacuum


def test_diagnostics_non_negative(params):
    solver = MaxwellTE(params)
    for src in _all_kinds():
        solver.add_source(src)
    solver.run(30)

    I = solver.get_intensity()
    S = solver.get_poynting_vector()
    assert I.shape == (params.nx * params.ny,)
    assert S.shape == (params.nx * params.ny,)
    assert torch.all(I >= 0)
    assert torch.all(S >= 0)
    assert float(I.max()) > 0


def test_reset_contract(params):
    solver = MaxwellTE(params)
    sources = _all_kinds()
    for src in sources:
        solver.add_source(src)
    ob = Obstacle(id="o", x=20, y=20, width=5, height=5, material=Material(4.0, 1.0, 0.0))
    solver.add_obstacle(ob)
    solver.run(20)
    materials = solver.get_materials()

    solver.reset()

    assert solver.get_time() == 0
    assert solver.step_count == 0
    f = solver.get_fields()
    assert torch.all(f.Ez == 0) and torch.all(f.Hx == 0) and torch.all(f.Hy == 0)
    assert solver.get_sources() == sources
    assert solver.get_obstacles() == [ob]
    assert torch.equal(solver.get_materials()["eps"], materials["eps"])
    assert torch.equal(solver.get_materials()["sigma"], materials["sigma"])


def test_run_counts_steps(params):
    solver = MaxwellTE(params)
    solver.run(0)
    solver.run(-5)
    assert solver.step_count == 0

    solver.run(7)
    assert solver.step_count == 7
    assert solver.get_time() == pytest.approx(7 * params.dt)


def test_update_source_in_place(params):
    solver = MaxwellTE(params)
    src = DipoleSource(id="d", x=10, y=10, frequency=1e9, amplitude=1.0)
    solver.add_source(src)

    solver.update_source("d", amplitude=3.0, x=12, polarity="S-N")
    solver.update_source("missing", amplitude=9.0)

    assert solver.get_sources() == [src]
    assert src.amplitude == 3.0
    assert src.x == 12
    assert not hasattr(src, "polarity")


def test_update_source_kind_change_keeps_slot(params):
    solver = MaxwellTE(params)
    solver.add_source(DipoleSource(id="a", x=10, y=10, frequency=1e9, amplitude=1.0))
    solver.add_source(DipoleSource(id="b", x=20, y=20, frequency=2e9, amplitude=1.0))

    solver.update_source("a", kind="current-loop", radius=4.0)

    first = solver.get_sources()[0]
    assert isinstance(first, CurrentLoopSource)
    assert (first.id, first.x, first.frequency, first.radius) == ("a", 10, 1e9, 4.0)
    assert [s.id for s in solver.get_sources()] == ["a", "b"]


def test_update_source_loop_width_sets_radius(params):
    solver = MaxwellTE(params)
    loop = make_source("current-loop", "l", x=30, y=30, frequency=1e9, amplitude=1.0)
    solver.add_source(loop)

    solver.update_source("l", width=5)

    assert loop.radius == 5
    assert not hasattr(loop, "width")


def test_remove_source(params):
    solver = MaxwellTE(params)
    solver.add_source(GaussianSource(id="g", x=30, y=30, frequency=5e9, amplitude=1.0))
    solver.remove_source("nope")
    assert len(solver.get_sources()) == 1

    solver.remove_source("g")
    solver.run(5)
    assert solver.get_sources() == []
    assert torch.all(solver.get_fields().Ez == 0)


def test_field_at_out_of_range_is_zero(params):
    solver = MaxwellTE(params)
    solver.grid.Ez.fill_(1.0)

    for x, y in [(-1, 5), (5, -0.5), (60, 5), (5, 60), (math.nan, 3), (3, math.inf)]:
        probe = solver.get_field_at(x, y)
        assert (probe.ez, probe.hx, probe.hy) == (0.0, 0.0, 0.0)
    assert solver.get_field_at(59.99, 0).ez == 1.0


def test_snapshot_is_isolated_from_stepping(params):
    solver = MaxwellTE(params)
    solver.add_source(DipoleSource(id="d", x=30, y=30, frequency=1e9, amplitude=1.0, phase=math.pi / 2))
    solver.step()
    snap = solver.get_fields()
    held = snap.Ez.clone()

    snap.Ez.fill_(99.0)
    assert solver.get_field_at(0, 0).ez == 0.0
    solver.run(3)
    assert snap.step == 1
    assert snap.time == pytest.approx(params.dt)
    assert float(held[30 * params.nx + 30]) == pytest.approx(1.0)


def test_zero_permittivity_propagates_nan_silently(params):
    solver = MaxwellTE(params)
    solver.add_obstacle(Obstacle(id="void", x=28, y=28, width=3, height=3, material=Material(0.0, 1.0, 0.0)))

    assert int(solver.degenerate_cells().sum()) == 9
    solver.step()

    assert not solver.is_finite()
    assert not solver.get_field_at(29, 29).finite
    assert solver.get_field_at(10, 10).finite
    assert solver.step_count == 1


def test_courant_violation_is_logged_not_raised(caplog):
    p = GridParams(nx=20, ny=20, dx=1e-3, dy=1e-3, dt=1e-3 / C0)

    with caplog.at_level(logging.WARNING, logger="maxwell2d.maxwell_te"):
        solver = MaxwellTE(p, pml=PMLConfig(thickness=0))
    solver.run(2)

    assert "Courant" in caplog.text
    assert solver.step_count == 2
