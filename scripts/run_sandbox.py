import sys
import os
import math
import argparse
import logging
import torch
import matplotlib.pyplot as plt

proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(proj_root, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)
from maxwell2d import MaxwellTE, GridParams, PMLConfig, Obstacle, Material, make_source, field_metrics
from maxwell2d.sources import SOURCE_TYPES

parser = argparse.ArgumentParser(description="Run the 2D TE FDTD sandbox with one source and an optional obstacle")
parser.add_argument('--freq-ghz', type=float, default=5.0, help='Design frequency for the grid and the source')
parser.add_argument('--ppw', type=int, default=20, help='Cells per wavelength')
parser.add_argument('--nx', type=int, default=200)
parser.add_argument('--ny', type=int, default=150)
parser.add_argument('--courant', type=float, default=0.5, help='dt = courant * dx / c0')
parser.add_argument('--pml', type=int, default=20, help='PML thickness in cells')
parser.add_argument('--steps', type=int, default=300)
parser.add_argument('--source', type=str, choices=sorted(SOURCE_TYPES), default='dipole')
parser.add_argument('--src-x', type=float, default=None)
parser.add_argument('--src-y', type=float, default=None)
parser.add_argument('--src-amp', type=float, default=1.0)
parser.add_argument('--src-phase', type=float, default=0.0)
parser.add_argument('--src-angle', type=float, default=0.0, help='Wire/magnet angle in degrees')
parser.add_argument('--obstacle', type=str, default=None, help='x,y,width,height in cells')
parser.add_argument('--eps', type=float, default=1.0, help='Obstacle relative permittivity')
parser.add_argument('--mu', type=float, default=1.0, help='Obstacle relative permeability')
parser.add_argument('--sigma', type=float, default=1e7, help='Obstacle conductivity (S/m)')
parser.add_argument('--field', type=str, choices=['Ez', 'Hx', 'Hy', 'intensity', 'poynting'], default='Ez')
parser.add_argument('--norm', type=str, default='sym', choices=['sym', 'abs', 'percentile'])
parser.add_argument('--cmap', type=str, default=None)
parser.add_argument('--png', type=str, default=None, help='Save a snapshot of --field (relative to project root if not absolute)')
parser.add_argument('--save', type=str, default=None, help='torch.save the final fields (relative to project root if not absolute)')
parser.add_argument('--verbose', action='store_true')
args, _ = parser.parse_known_args()

logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                    format='%(levelname)s %(name)s: %(message)s')

freq_hz = float(args.freq_ghz) * 1e9
params = GridParams.for_frequency(freq_hz, points_per_wavelength=args.ppw,
                                  nx=args.nx, ny=args.ny, courant=args.courant)
print(f"grid: nx={params.nx}, ny={params.ny}, dx={params.dx:.3e}, dy={params.dy:.3e}, dt={params.dt:.3e}")
print(f"courant number: {params.courant_number():.3f}")

solver = MaxwellTE(params, pml=PMLConfig(thickness=args.pml))

sx = args.src_x if args.src_x is not None else params.nx // 4
sy = args.src_y if args.src_y is not None else params.ny // 2
solver.add_source(make_source(args.source, 'src-0', x=sx, y=sy, frequency=freq_hz,
                              amplitude=args.src_amp, phase=args.src_phase,
                              angle=math.radians(args.src_angle)))
print(f"Source: {args.source} at ({sx},{sy}), f={freq_hz:.3e} Hz")

if args.obstacle is not None:
    ox, oy, ow, oh = map(float, args.obstacle.split(','))
    solver.add_obstacle(Obstacle(id='obs-0', x=ox, y=oy, width=ow, height=oh,
                                 material=Material(args.eps, args.mu, args.sigma)))
    bad = int(solver.degenerate_cells().sum())
    print(f"Obstacle at ({ox},{oy}) {ow}x{oh}: eps={args.eps} mu={args.mu} sigma={args.sigma}"
          + (f" ({bad} degenerate cells)" if bad else ""))

steps = int(args.steps)
for n in range(steps):
    solver.step()
    # early break on numerical issues
    if not solver.is_finite():
        print(f"break at step {n}: non-finite values detected")
        break
    if n % max(1, steps//10) == 0:
        ez = solver.get_fields().Ez
        m = field_metrics(solver.grid.Ez, solver.grid.Hx, solver.grid.Hy)
        print(f"step {n}: min={float(ez.min()):.3e} max={float(ez.max()):.3e} "
              f"energy={m.total_energy:.3e} maxS={m.max_poynting:.3e} nonzero={int((ez != 0).sum())}")

snap = solver.get_fields()
for name, ft in (('Ez', snap.Ez), ('Hx', snap.Hx), ('Hy', snap.Hy)):
    print('%s final stats: min=%g max=%g mean=%g nonzero=%d' % (
        name, float(ft.min()), float(ft.max()), float(ft.mean()), int((ft != 0).sum())
    ))
print(f"t = {solver.get_time():.3e} s after {snap.step} steps")

def _resolve(path):
    return path if os.path.isabs(path) else os.path.join(proj_root, path)

if args.save:
    out = _resolve(args.save)
    torch.save({'Ez': snap.Ez, 'Hx': snap.Hx, 'Hy': snap.Hy, 'step': snap.step,
                'time': snap.time, 'nx': params.nx, 'ny': params.ny}, out)
    print('Saved final tensors to', out)

def _compute_scale(ft: torch.Tensor, mode: str):
    ft = torch.nan_to_num(ft, nan=0.0, posinf=0.0, neginf=0.0)
    mn = float(torch.min(ft).item())
    mx = float(torch.max(ft).item())
    vmax_abs = max(abs(mn), abs(mx)) if (not (mn == 0.0 and mx == 0.0)) else 1.0
    if mode == 'abs':
        return 0.0, vmax_abs
    if mode == 'percentile':
        q = torch.quantile(ft.flatten().to(torch.float32), torch.tensor([0.01, 0.99]))
        vmin = float(q[0].item()); vmax = float(q[1].item())
        if vmin == vmax:
            vmin -= 1e-12; vmax += 1e-12
        return vmin, vmax
    return -vmax_abs, vmax_abs

def plot_field(ft: torch.Tensor, title: str, out_png: str, mode: str, cmap):
    ft = ft.detach().cpu().reshape(params.ny, params.nx)
    vmin, vmax = _compute_scale(ft, mode)
    cm = cmap if cmap is not None else ('turbo' if mode in ('sym', 'percentile') else 'viridis')
    extent = [0.0, params.nx*params.dx*1e3, 0.0, params.ny*params.dy*1e3]
    plt.figure(figsize=(6, 4))
    im = plt.imshow(torch.nan_to_num(ft).numpy(), origin='lower', cmap=cm, extent=extent,
                    aspect='equal', vmin=vmin, vmax=vmax)
    plt.colorbar(im, label=title + ' (a.u.)')
    plt.xlabel('x (mm)'); plt.ylabel('y (mm)')
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=200)
    print(f'Saved {out_png} with vmin={vmin:.3e}, vmax={vmax:.3e}, cmap={cm}')
    plt.close()

if args.png:
    field = {'Ez': snap.Ez, 'Hx': snap.Hx, 'Hy': snap.Hy,
             'intensity': solver.get_intensity(), 'poynting': solver.get_poynting_vector()}[args.field]
    mode = 'abs' if args.field in ('intensity', 'poynting') else args.norm
    plot_field(field, args.field, _resolve(args.png), mode=mode, cmap=args.cmap)
