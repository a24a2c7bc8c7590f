'''
Compare Householder Adaptive Simpler GMRES with scipy's GMRES
on a convection-diffusion matrix
'''

import time
import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
import matplotlib.pyplot as plt

from jfnk import asgmres

# Parameters
N = 400
Pe = 5.0
h = 1.0 / (N + 1)
restart = 50
tol = 1e-10

# 1D convection-diffusion, centered differences
main = 2.0 * np.ones(N)
lower = -(1.0 + 0.5*Pe*h) * np.ones(N - 1)
upper = -(1.0 - 0.5*Pe*h) * np.ones(N - 1)
A = sp.diags([lower, main, upper], [-1, 0, 1], format='csr') / h**2
b = np.ones(N)
diag = A.diagonal()

start = time.perf_counter()
x, history = asgmres(lambda v: A @ v, b, restart=restart, maxiter=20*N, tol=tol,
                     right=lambda v: v / diag)
elapsed = time.perf_counter() - start
print(f'asgmres: {len(history)-1} Krylov steps, |b-Ax|/|b| = '
      f'{np.linalg.norm(b - A @ x)/np.linalg.norm(b):.3e}, {elapsed:.3f} s')

scipy_history = []
start = time.perf_counter()
x_sp, info = spla.gmres(A, b, rtol=tol, restart=restart, maxiter=20*N,
                        callback=scipy_history.append, callback_type='pr_norm')
elapsed = time.perf_counter() - start
print(f'scipy gmres: info = {info}, |b-Ax|/|b| = '
      f'{np.linalg.norm(b - A @ x_sp)/np.linalg.norm(b):.3e}, {elapsed:.3f} s')
print(f'|x - x_scipy| = {np.linalg.norm(x - x_sp):.3e}')

plt.semilogy(history / history[0], label='asgmres (Jacobi, right)')
plt.semilogy(scipy_history, label='scipy gmres')
plt.xlabel('Krylov step')
plt.ylabel('relative residual')
plt.legend()
plt.savefig('asgmres_history.png')
