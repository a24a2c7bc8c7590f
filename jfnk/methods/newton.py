from dataclasses import dataclass, field
import enum
import os

import numpy as np

from .krylov import GMRESWorkspace, asgmres_cycle
from .line_search import inexact_line_search
from .parameters import Parameters
from ..solvers.preconditioner import IdentityPreconditioner

class ReturnStatus(enum.Enum):
    NORM_CONVERGED = 'NormConverged'
    TOO_SMALL_STEP_NORM = 'TooSmallStepNorm'
    ITERATION_MAXIMUM_REACHED = 'IterationMaximumReached'
    HOOK_EXIT_REQUEST = 'HookExitRequest'


class HookSignal(enum.Enum):
    EXIT = 'exit'
    NOT_DONE = 'notDone'


def _is_signal(flag, signal):
    '''Hooks may return a HookSignal, its value as a string (any case) or None'''
    if flag is None:
        return False
    if isinstance(flag, HookSignal):
        return flag is signal
    return isinstance(flag, str) and flag.lower() == signal.value.lower()


@dataclass
class SolveStats:
    iterations: int = 0
    initial_norm: float = 0.
    norms: list = field(default_factory=list)  # nonlinear residual norm after each accepted step
    converged: bool = False
    return_status: ReturnStatus | None = None


class JFNKSolver():
    """
    Jacobian-Free Newton-Krylov solver for F(x) = 0.

    Each Newton iteration solves J dx = F(x) with restarted Adaptive Simpler GMRES
    (Householder variant), where J is only applied through finite differences
    J w ~ (F(x + eps*w) - F(x))/eps. The update x - dx is adjusted by the residual's
    step guard and shrunk by an inexact line search if it increases |F|.

    Parameters
    ----------
    residual: Residual, optional
        Residual evaluator with value(x) and guard.value/guard.step. Can be bound later.
    preconditioner: Preconditioner, optional
        Right preconditioner. Default is the identity.
    pm: Parameters, optional
        Solver parameters. Validated at construction.
    """
    def __init__(self, residual=None, preconditioner=None, pm: Parameters | None = None):
        self.pm = Parameters() if pm is None else pm
        self.pm.validate()

        self.residual = residual
        self.preconditioner = IdentityPreconditioner() if preconditioner is None else preconditioner
        self.ws = None

    def bind(self, residual=None, preconditioner=None):
        '''Binds residual and/or preconditioner before solving'''
        if residual is not None:
            self.residual = residual
        if preconditioner is not None:
            self.preconditioner = preconditioner

    def norm(self, x):
        return np.linalg.norm(x)

    def allocate(self, n):
        '''Sizes the Krylov work arrays for an n dimensional problem'''
        max_steps = n if self.pm.N_gmres is None else min(self.pm.N_gmres, n)
        if self.ws is None or self.ws.n != n or self.ws.max_steps != max_steps:
            self.ws = GMRESWorkspace(n, max_steps)

    def _hook(self, name, x):
        func = getattr(self.pm, name)
        return None if func is None else func(x)

    def solve(self, x):
        """
        Iterates Newton-Krylov until convergence, iteration limit or hook exit.

        Returns
        -------
        x: np.array
            Final state.
        stats: SolveStats
        post_flag:
            Value returned by the postsolve hook.
        """
        if self.residual is None:
            raise ValueError('No residual bound to the solver')
        pm = self.pm

        x = np.atleast_1d(np.array(x, dtype=float))
        if x.ndim != 1:
            raise ValueError(f'State must be a 1D array, got shape {x.shape}')
        self.allocate(len(x))

        pre_solve_flag = self._hook('presolve', x)

        stats = SolveStats()

        # Initialize residual and preconditioner
        x = np.array(self.residual.guard.value(x), dtype=float)
        r = self.residual.value(x)
        r_norm = self.norm(r)
        stats.initial_norm = r_norm
        self.preconditioner.initialize(x)

        self.write_header_newton()
        self.write_newton(0, r_norm, 0., x)

        norm_not_done = not (r_norm <= pm.tol_newt)
        step_not_done = True
        stalled = False
        not_converged = norm_not_done and step_not_done
        below_iter_max = stats.iterations < pm.N_newt
        flagged_exit = _is_signal(pre_solve_flag, HookSignal.EXIT)
        not_done = not_converged and below_iter_max and not flagged_exit

        while not_done:
            pre_flag = self._hook('prestep', x)
            if _is_signal(pre_flag, HookSignal.EXIT):
                flagged_exit = True
                break

            iN = stats.iterations + 1

            # Evaluate residual and take a step
            r = self.residual.value(x)
            r_norm = self.norm(r)
            x_new, r_norm_new, dx_norm = self.quasi_newton_update(x, r, r_norm, iN)

            if x_new is None:
                # Line search could not reduce the residual: reject the step
                stalled = True
                step_not_done = False
                break
            x, r_norm = x_new, r_norm_new

            post_flag = self._hook('poststep', x)
            if _is_signal(post_flag, HookSignal.EXIT):
                flagged_exit = True
                break

            # Update to new state
            stats.iterations += 1
            stats.norms.append(r_norm)
            self.preconditioner.update(x)
            self.write_newton(iN, r_norm, dx_norm, x)

            # Convergence checks
            norm_not_done = not (r_norm < pm.tol_newt)
            if pm.tol_step is not None:
                step_not_done = dx_norm >= pm.tol_step * np.linalg.norm(x, np.inf)
            below_iter_max = stats.iterations < pm.N_newt
            not_converged = norm_not_done and step_not_done

            flagged_not_done = any(_is_signal(f, HookSignal.NOT_DONE) for f in (pre_flag, post_flag))
            not_done = (below_iter_max and not_converged) or flagged_not_done

        post_solve_flag = self._hook('postsolve', x)

        stats.converged = not norm_not_done or (not step_not_done and not stalled)

        # Reason why control is returned to the caller
        if flagged_exit:
            stats.return_status = ReturnStatus.HOOK_EXIT_REQUEST
        elif not norm_not_done:
            stats.return_status = ReturnStatus.NORM_CONVERGED
        elif not step_not_done:
            stats.return_status = ReturnStatus.TOO_SMALL_STEP_NORM
        else:
            stats.return_status = ReturnStatus.ITERATION_MAXIMUM_REACHED

        return x, stats, post_solve_flag

    def quasi_newton_update(self, x, r, r_norm, iN=0):
        """
        Computes a Newton step that does not increase the residual norm.

        Returns
        -------
        x_new: np.array or None
            New state, or None if no scale of the step reduces |F|.
        r_norm_new: float
            Residual norm at x_new.
        dx_norm: float
            Infinity norm of the accepted step.
        """
        dx = self.gmres(x, r, r_norm, iN)

        # Allow adjustment of the step through the residual's guard
        dx = self.residual.guard.step(x, dx)
        r_new_norm = self.norm(self.residual.value(x - dx))

        # NaN trial norms also go through the line search
        if not (r_new_norm <= r_norm):
            phi = lambda s: self.norm(self.residual.value(x - s*dx))
            trace = [] if self.pm.linesearch_dir is not None else None
            s, r_new_norm = inexact_line_search(phi, r_norm, r_new_norm,
                                                self.pm.tol_search, self.pm.N_search, trace)
            if trace is not None:
                self.write_linesearch(iN, trace)
            # A scale that leaves |F| unchanged is no progress
            if not (r_new_norm < r_norm and s > 0.):
                return None, r_norm, 0.
            dx = s * dx

        return x - dx, r_new_norm, np.linalg.norm(dx, np.inf)

    def gmres(self, x, r, r_norm, iN=0):
        '''Outer restart loop: accumulates the step over N_restart ASGMRES cycles'''
        dx = np.zeros_like(x)
        rk, rk_norm = r, r_norm
        history = [r_norm] if self.pm.gmres_dir is not None else None

        for _ in range(self.pm.N_restart):
            step, rk, rk_norm, k = self.gmres_inner(x, r, rk, rk_norm, history)
            dx += step
            if rk_norm <= self.pm.tol_gmres or k == 0:
                break

        if history is not None:
            self.write_gmres(iN, history)
        return dx

    def gmres_inner(self, x, r, rk, rk_norm, history=None):
        """
        One ASGMRES cycle for J dx = rk, with J applied by finite differences at x.

        r is F(x), the base value of the finite differences, and rk the linear
        residual the cycle starts from (r itself in the first cycle).

        Returns
        -------
        dx: np.array
            Step in the original variables (preconditioner applied).
        rk: np.array
            Final linear residual.
        rk_norm: float
        k: int
            Number of Krylov steps consumed.
        """
        eps = self.pm.eps0

        def apply_J(z):
            ''' Applies J (jacobian of the residual) to the preconditioned direction z '''
            w = self.preconditioner.apply(z)
            return (self.residual.value(x + eps*w) - r) / eps

        max_steps = self.ws.max_steps
        u, rk, rk_norm, k = asgmres_cycle(apply_J, rk, rk_norm, self.ws, self.pm.nu,
                                          self.pm.tol_gmres, max_steps, history)
        if k == 0:
            return u, rk, rk_norm, k
        return self.preconditioner.apply(u), rk, rk_norm, k

    def _get_path(self, base_dir: str | None, *parts):
        """Safely join base_dir with subpaths. Returns None if base_dir is None."""
        if base_dir is None:
            return None
        os.makedirs(base_dir, exist_ok=True)
        return os.path.join(base_dir, *parts)

    def write_header_newton(self):
        """Writes header to newton.txt file."""
        path = self._get_path(self.pm.newton_dir, "newton.txt")
        if path is None:
            return
        with open(path, "a") as file:
            print("iN, |F|, |dx|, |x|", file=file)

    def write_newton(self, iN, F, dx_norm, x):
        """Writes iteration data to newton.txt file."""
        path = self._get_path(self.pm.newton_dir, "newton.txt")
        if path is None:
            return
        with open(path, "a") as file:
            print(f"{iN:02},{F:.6e},{dx_norm:.6e},{self.norm(x):.6e}", file=file)

    def write_gmres(self, iN, history):
        path = self._get_path(self.pm.gmres_dir, f"gmres_iN{iN:02}.txt")
        if path is None:
            return
        with open(path, "w") as file:
            print("iG, |r|", file=file)
            for iG, error in enumerate(history):
                print(f"{iG:02},{error:.6e}", file=file)

    def write_linesearch(self, iN, trace):
        path = self._get_path(self.pm.linesearch_dir, f"linesearch_iN{iN:02}.txt")
        if path is None:
            return
        with open(path, "w") as file:
            print("iL, s, |F|", file=file)
            for iL, (s, F) in enumerate(trace):
                print(f"{iL:02},{s:.6e},{F:.6e}", file=file)
