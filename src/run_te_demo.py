from __future__ import annotations
import numpy as np
from maxwell2d import MaxwellTE, GridParams, DipoleSource, Obstacle, Material
import matplotlib.pyplot as plt

# Simple demo: 5 GHz dipole next to a conducting slab, TE 2D

def main():
    params = GridParams.for_frequency(5e9, points_per_wavelength=20, nx=200, ny=150)
    solver = MaxwellTE(params)

    cx, cy = params.nx // 4, params.ny // 2
    solver.add_source(DipoleSource(id='src', x=cx, y=cy, frequency=5e9, amplitude=1.5))
    solver.add_obstacle(Obstacle(id='slab', x=110, y=40, width=4, height=70,
                                 material=Material(epsilon=1.0, mu=1.0, sigma=1e7)))

    steps = 400
    for n in range(steps):
        solver.step()
        if n % 50 == 0:
            ez = solver.get_fields().Ez
            print(f"step {n}: |Ez|max={float(ez.abs().max()):.3e}")

    # Plot final snapshot
    ez = solver.get_fields().Ez.reshape(params.ny, params.nx).cpu().numpy()
    vmax = float(np.max(np.abs(ez))) or 1.0
    plt.figure(figsize=(6, 4))
    plt.imshow(ez, origin='lower', cmap='RdBu', vmin=-vmax, vmax=vmax,
               extent=[0, params.nx*params.dx*1e3, 0, params.ny*params.dy*1e3])
    plt.colorbar(label='Ez (a.u.)')
    plt.xlabel('x (mm)')
    plt.ylabel('y (mm)')
    plt.title('TE Ez snapshot')
    plt.tight_layout()
    plt.show()

if __name__ == '__main__':
    main()
