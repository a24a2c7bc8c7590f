import enum

import numpy as np

from .householder import HouseholderQR


class BasisChoice(enum.Enum):
    RESIDUAL = 'residual' # Simpler GMRES basis: normalized current residual
    GCR = 'gcr'           # previous column of the orthogonal factor


def select_basis(rk, rk_norm, rkm1_norm, q_prev, nu):
    """
    Chooses the next Krylov direction.

    When the residual decays fast (|r_k| <= nu*|r_k-1|) the normalized residual is
    used; otherwise the previous orthogonal factor column is reused, which keeps
    the basis well conditioned when the decay stalls.

    Returns
    -------
    z: np.array
        Unit direction to feed into the operator.
    choice: BasisChoice
    """
    if rk_norm <= nu * rkm1_norm:
        return rk / rk_norm, BasisChoice.RESIDUAL
    return q_prev.copy(), BasisChoice.GCR


class GMRESWorkspace():
    """Work arrays for one ASGMRES cycle, sized once per problem.

    Parameters
    ----------
    n: int
        Problem dimension.
    max_steps: int
        Maximum Krylov dimension of a cycle (capped at n).
    """
    def __init__(self, n, max_steps):
        self.n = n
        self.max_steps = min(max_steps, n)
        self.Z = np.zeros((n, self.max_steps))
        self.alpha = np.zeros(self.max_steps)
        self.qr = HouseholderQR(n, self.max_steps)
        self.bases = []

    def reset(self):
        self.Z[:] = 0.
        self.alpha[:] = 0.
        self.qr.reset()
        self.bases = []


def backsub(R, b):
    """
    Solves the equation Rx = b, where R is a square upper triangular matrix.
    A zero pivot leaves the corresponding component of x at zero.
    """
    n = len(b)
    x = np.zeros(n)

    for i in range(n-1, -1, -1):
        if R[i, i] == 0.:
            continue
        aux = R[i, i+1:] @ x[i+1:]
        x[i] = (b[i]-aux)/R[i, i]
    return x


def solve_least_squares(R, alpha):
    """
    Solves the triangular least-squares system R y = alpha.

    If R is poorly conditioned (reciprocal condition number below 100*eps) the
    columns are rescaled by the inverse diagonal before back substitution and the
    solution is unscaled afterwards.
    """
    with np.errstate(divide='ignore'):
        rcond = 1.0 / np.linalg.cond(R, 1)
    if rcond > 100 * np.finfo(float).eps:
        return backsub(R, alpha)

    d = np.diag(R)
    S = np.ones_like(d)
    S[d != 0.] = 1.0 / d[d != 0.]
    w = backsub(R * S, alpha)
    return S * w


def asgmres_cycle(apply_op, rk, rk_norm, ws, nu, tol, max_steps, history=None):
    """
    Performs one cycle of Adaptive Simpler GMRES with Householder orthogonalization.

    Ref: Jiránek & Rozložník, "Adaptive version of Simpler GMRES",
         Numerical Algorithms 53.1 (2010): 93-112.

    Parameters
    ----------
    apply_op: callable
        Action of the (preconditioned) operator on a direction.
    rk: np.array
        Linear residual at the start of the cycle.
    rk_norm: float
        Norm of rk.
    ws: GMRESWorkspace
        Work arrays, reset at the start of the cycle.
    nu: float
        Adaptivity threshold for the basis choice.
    tol: float
        Absolute tolerance on the residual norm.
    max_steps: int
        Maximum number of Krylov steps in this cycle.
    history: list, optional
        If provided, the residual norm after each step is appended to it.

    Returns
    -------
    u: np.array
        Update in the preconditioned variables, Z[:, :k] @ y.
    rk: np.array
        Final linear residual.
    rk_norm: float
        Norm of the final linear residual.
    k: int
        Number of Krylov steps consumed.
    """
    ws.reset()
    rk = np.array(rk, dtype=float)
    if rk_norm == 0.:
        return np.zeros(ws.n), rk, 0., 0

    max_steps = min(max_steps, ws.max_steps)
    if max_steps <= 0:
        return np.zeros(ws.n), rk, rk_norm, 0
    rkm1_norm = rk_norm
    q = None

    for k in range(max_steps):
        if k == 0:
            z, choice = rk / rk_norm, BasisChoice.RESIDUAL
        else:
            z, choice = select_basis(rk, rk_norm, rkm1_norm, q, nu)
        ws.Z[:, k] = z
        ws.bases.append(choice)

        # Fold the image of z into the QR factorization
        ws.qr.extend(apply_op(z))
        q = ws.qr.q_column(k)

        # Projected residual update
        ws.alpha[k] = q @ rk
        rk = rk - ws.alpha[k] * q

        rkm1_norm = rk_norm
        rk_norm = np.linalg.norm(rk)

        if history is not None:
            history.append(rk_norm)

        if rk_norm < tol or rk_norm == 0.:
            break

    steps = k + 1
    y = solve_least_squares(ws.qr.triangular(), ws.alpha[:steps])
    u = ws.Z[:, :steps] @ y
    return u, rk, rk_norm, steps


def _identity(v):
    return v


def asgmres(A, b, x0=None, restart=None, maxiter=None, tol=1e-10, nu=0.9,
            left=None, right=None, report_path=None):
    """
    Solves Ax = b with restarted Adaptive Simpler GMRES (Householder variant).

    Parameters
    ----------
    A : m x m matrix (or function that applies it)
    b : m dim vector
    x0 : m dim vector, optional. Initial guess, zero by default.
    restart : int, optional. Krylov dimension of each cycle. Default: maxiter.
    maxiter : int, optional. Total number of Krylov steps over all cycles. Default: m.
    tol : float. Convergence threshold relative to the initial residual norm.
    nu : float. Adaptivity threshold for the basis choice.
    left, right : callables, optional. Left and right preconditioners (identity by default).
    report_path : str, optional. If provided, appends 'k,|r_k|' lines to this file.

    Returns
    -------
    x : m dim vector approximating the solution of Ax = b
    history : residual norm at the start and after every Krylov step, across all restarts
    """
    b = np.asarray(b, dtype=float)
    n = len(b)
    x0 = np.zeros(n) if x0 is None else np.asarray(x0, dtype=float)
    if x0.shape != b.shape:
        raise ValueError(f'x0 shape {x0.shape} does not match b shape {b.shape}')

    left = _identity if left is None else left
    right = _identity if right is None else right

    if callable(A):
        apply_A = A
    else:
        A = np.asarray(A)
        if A.shape != (n, n):
            raise ValueError(f'A must have shape ({n}, {n}), got {A.shape}')
        apply_A = lambda v: A @ v

    def apply_op(z):
        return left(apply_A(right(z)))

    if restart is not None and restart < 1:
        raise ValueError(f'restart must be at least 1, got {restart}')
    maxiter = n if maxiter is None else maxiter
    if maxiter < 0:
        raise ValueError(f'maxiter must be non-negative, got {maxiter}')
    restart = maxiter if restart is None else restart
    n_iterate = min(restart, maxiter, n)

    ws = GMRESWorkspace(n, n_iterate)

    rk = left(b - apply_A(x0))
    rk_norm = np.linalg.norm(rk)
    tolerance = tol * rk_norm
    history = [rk_norm]

    y = np.zeros(n)
    iterations = 0
    not_done = rk_norm > tolerance and maxiter > 0

    while not_done:
        u, rk, rk_norm, k = asgmres_cycle(apply_op, rk, rk_norm, ws, nu, tolerance,
                                          n_iterate, history)
        y += u
        iterations += k

        not_done = (rk_norm > tolerance) and (iterations < maxiter) and k > 0
        if not_done and maxiter < iterations + n_iterate:
            n_iterate = maxiter - iterations

    if report_path is not None:
        with open(report_path, 'a') as file:
            for i, error in enumerate(history):
                file.write(f'{i},{error}\n')

    return x0 + right(y), np.array(history)
