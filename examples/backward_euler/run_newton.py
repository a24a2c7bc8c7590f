"""
Backward Euler for the Fisher-KPP equation
==========================================
u_t = D u_xx + r u (1 - u) on a periodic domain, second order finite
differences in space. Every time step is a nonlinear solve with JFNK,
preconditioned with the pointwise (Jacobi) part of the Jacobian.
"""

import sys
import numpy as np
import matplotlib.pyplot as plt

from jfnk import JFNKSolver, JacobiPreconditioner, load_parameters
from jfnk.solvers import BoundsGuard, ImplicitEuler, ImplicitEulerResidual, SpatialDiscretization

class FisherKPP(SpatialDiscretization):
    def __init__(self, Nx=256, Lx=40.0, D=1.0, r=1.0):
        self.Nx = Nx
        self.dx = Lx / Nx
        self.xx = np.arange(Nx) * self.dx
        self.D = D
        self.r = r

    def rhs(self, q):
        lap = (np.roll(q, -1) - 2*q + np.roll(q, 1)) / self.dx**2
        return self.D*lap + self.r*q*(1 - q)

    def block_diagonal_jacobian(self, q):
        return -2*self.D/self.dx**2 + self.r*(1 - 2*q)

def main():
    pm = load_parameters("params_newton.yaml")

    spatial = FisherKPP()
    stepper = ImplicitEuler(spatial)
    residual = ImplicitEulerResidual(stepper, guard=BoundsGuard(lower=0.))
    precond = JacobiPreconditioner(residual.diagonal)
    solver = JFNKSolver(residual, precond, pm)

    # Initial conditions
    q = np.exp(-(spatial.xx - 20.0)**2)
    dt, Nt = 0.5, 20

    plt.figure(1)
    plt.plot(spatial.xx, q, 'k--')
    for step in range(Nt):
        t = step * dt
        stepper.update(q, t, dt)
        q, stats, _ = solver.solve(q)
        print(f"t = {t+dt:.2f}: {stats.iterations} Newton iterations, "
              f"|F| = {stats.norms[-1] if stats.norms else stats.initial_norm:.3e}, "
              f"{stats.return_status.value}", file=sys.stdout)
        if not stats.converged:
            print("Newton solver did not converge, stopping.", file=sys.stdout)
            break
        if step % 5 == 4:
            plt.plot(spatial.xx, q)

    plt.xlabel('x')
    plt.ylabel('u')
    plt.savefig('fisher_kpp.png')

if __name__ == "__main__":
    main()
