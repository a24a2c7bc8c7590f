import numpy as np
import numpy.testing as npt
import pytest

from jfnk import (FunctionResidual, HookSignal, IdentityPreconditioner, JacobiPreconditioner,
                  JFNKSolver, Parameters, ReturnStatus, load_parameters)
from jfnk.solvers.residual import BoundsGuard, Guard


def cubic(x):
    return x**3 - 2.


class ReversingGuard(Guard):
    ''' Turns every Newton step into an ascent direction '''
    def step(self, x, dx):
        return -dx


class SpyPreconditioner(IdentityPreconditioner):
    def __init__(self):
        self.calls = []

    def initialize(self, x):
        self.calls.append('initialize')

    def update(self, x):
        self.calls.append('update')


def test_scalar_cubic_converges():
    solver = JFNKSolver(FunctionResidual(cubic))
    x, stats, _ = solver.solve(1.)

    npt.assert_allclose(x, [2**(1/3)], rtol=1e-5)
    assert stats.converged
    assert stats.return_status is ReturnStatus.NORM_CONVERGED
    assert stats.norms[-1] < solver.pm.tol_newt
    assert stats.initial_norm == pytest.approx(1.)
    # Accepted steps never increase the residual norm
    norms = [stats.initial_norm] + stats.norms
    assert np.all(np.diff(norms) <= 0.)
    assert len(stats.norms) == stats.iterations


def test_linear_problem():
    d = np.array([1., 2., 3., 4.])
    b = np.ones(4)
    solver = JFNKSolver(FunctionResidual(lambda x: d*x - b), pm=Parameters(tol_newt=1e-9))
    x, stats, _ = solver.solve(np.zeros(4))

    npt.assert_allclose(x, b / d, atol=1e-8)
    assert stats.converged
    assert stats.iterations <= 3


def test_converged_initial_guess_takes_no_step():
    calls = []
    def func(x):
        calls.append(1)
        return cubic(x)

    solver = JFNKSolver(FunctionResidual(func))
    x0 = np.array([2**(1/3)])
    x, stats, _ = solver.solve(x0)

    assert stats.iterations == 0
    assert stats.converged
    assert stats.return_status is ReturnStatus.NORM_CONVERGED
    npt.assert_array_equal(x, x0)
    assert len(calls) == 1


def test_presolve_exit():
    pm = Parameters(presolve=lambda x: HookSignal.EXIT)
    x, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(1.)

    assert stats.iterations == 0
    assert not stats.converged
    assert stats.return_status is ReturnStatus.HOOK_EXIT_REQUEST
    npt.assert_array_equal(x, [1.])


def test_prestep_exit_string_any_case():
    calls = []
    def prestep(x):
        calls.append(x.copy())
        return 'EXIT' if len(calls) == 2 else None

    pm = Parameters(prestep=prestep)
    _, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(1.)

    assert stats.iterations == 1
    assert stats.return_status is ReturnStatus.HOOK_EXIT_REQUEST


def test_poststep_not_done_forces_more_steps():
    # Loose tolerance: one Newton step from x = 2 is enough
    pm = Parameters(tol_newt=2.)
    _, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(2.)
    assert stats.iterations == 1

    calls = []
    def poststep(x):
        calls.append(1)
        return 'notDone' if len(calls) <= 2 else None

    pm = Parameters(tol_newt=2., poststep=poststep)
    _, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(2.)
    assert stats.iterations == 3
    assert stats.converged
    assert stats.return_status is ReturnStatus.NORM_CONVERGED


def test_postsolve_flag_is_returned():
    pm = Parameters(postsolve=lambda x: 'done')
    _, _, flag = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(1.)
    assert flag == 'done'


def test_iteration_maximum():
    pm = Parameters(N_newt=2, tol_newt=1e-14)
    _, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(1.)

    assert stats.iterations == 2
    assert not stats.converged
    assert stats.return_status is ReturnStatus.ITERATION_MAXIMUM_REACHED


def test_step_tolerance():
    # First Newton step from x = 1 is 1/3, below 0.5*|x_new|
    pm = Parameters(tol_step=0.5)
    x, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(1.)

    assert stats.iterations == 1
    assert stats.converged
    assert stats.return_status is ReturnStatus.TOO_SMALL_STEP_NORM
    npt.assert_allclose(x, [4/3], rtol=1e-6)


def test_stalled_line_search_rejects_step():
    pm = Parameters(N_search=10)
    residual = FunctionResidual(cubic, guard=ReversingGuard())
    x, stats, _ = JFNKSolver(residual, pm=pm).solve(1.)

    assert stats.iterations == 0
    assert not stats.converged
    assert stats.return_status is ReturnStatus.TOO_SMALL_STEP_NORM
    npt.assert_array_equal(x, [1.])


class FixedAscentGuard(Guard):
    ''' Replaces the Newton step with x - dx = x - 1 '''
    def step(self, x, dx):
        return np.ones_like(x)


def test_undefined_full_step_goes_through_line_search():
    # Full Newton step from x = 3 lands at x < 0, where log is NaN
    with np.errstate(invalid='ignore'):
        x, stats, _ = JFNKSolver(FunctionResidual(np.log)).solve(3.)

    assert np.all(np.isfinite(stats.norms))
    assert stats.converged
    assert stats.return_status is ReturnStatus.NORM_CONVERGED
    npt.assert_allclose(x, [1.], atol=1e-5)
    norms = [stats.initial_norm] + stats.norms
    assert np.all(np.diff(norms) <= 0.)


def test_nan_initial_residual_is_not_converged():
    pm = Parameters(N_newt=0)
    _, stats, _ = JFNKSolver(FunctionResidual(lambda x: np.full_like(x, np.nan)), pm=pm).solve(1.)
    assert not stats.converged
    assert stats.return_status is ReturnStatus.ITERATION_MAXIMUM_REACHED


def test_line_search_without_progress_is_a_stall():
    # |F| is quantized, so small enough scales of an ascent step leave it unchanged
    func = lambda x: np.round(x**3 - 2., 6)
    pm = Parameters(N_newt=5)
    residual = FunctionResidual(func, guard=FixedAscentGuard())
    x, stats, _ = JFNKSolver(residual, pm=pm).solve(1.)

    assert stats.iterations == 0
    assert not stats.converged
    assert stats.return_status is ReturnStatus.TOO_SMALL_STEP_NORM
    npt.assert_array_equal(x, [1.])


def test_bounds_guard_keeps_state_feasible():
    seen = []
    def func(x):
        seen.append(x.min())
        return np.sqrt(x) - 2.

    residual = FunctionResidual(func, guard=BoundsGuard(lower=0.))
    x, stats, _ = JFNKSolver(residual).solve(100.)

    assert stats.converged
    npt.assert_allclose(x, [4.], rtol=1e-5)
    assert min(seen) >= 0.


def test_bounds_guard_clamps_initial_state():
    guard = BoundsGuard(lower=0., upper=1.)
    npt.assert_array_equal(guard.value(np.array([-1., 0.5, 2.])), [0., 0.5, 1.])
    npt.assert_allclose(guard.step(np.array([0.5]), np.array([2.])), [0.5])


def test_preconditioner_call_order():
    spy = SpyPreconditioner()
    solver = JFNKSolver(FunctionResidual(cubic), preconditioner=spy)
    _, stats, _ = solver.solve(1.)

    assert spy.calls[0] == 'initialize'
    assert spy.calls.count('initialize') == 1
    assert spy.calls.count('update') == stats.iterations


def test_jacobi_preconditioned_problem():
    n = 12
    d = np.logspace(0, 3, n)
    b = np.linspace(1., 2., n)
    func = lambda x: d*x + 0.1*np.sin(x) - b
    diagonal = lambda x: d + 0.1*np.cos(x)

    pm = Parameters(tol_newt=1e-10)
    solver = JFNKSolver(FunctionResidual(func), JacobiPreconditioner(diagonal), pm)
    x, stats, _ = solver.solve(np.zeros(n))

    assert stats.converged
    npt.assert_allclose(func(x), 0., atol=1e-9)


def test_jacobi_requires_initialize():
    with pytest.raises(RuntimeError):
        JacobiPreconditioner(lambda x: x).apply(np.ones(2))


def test_report_files(tmp_path):
    pm = Parameters(newton_dir=str(tmp_path / 'newton'),
                    gmres_dir=str(tmp_path / 'gmres'),
                    linesearch_dir=str(tmp_path / 'linesearch'))
    _, stats, _ = JFNKSolver(FunctionResidual(cubic), pm=pm).solve(1.)

    lines = (tmp_path / 'newton' / 'newton.txt').read_text().splitlines()
    assert lines[0] == 'iN, |F|, |dx|, |x|'
    assert len(lines) == 2 + stats.iterations

    gmres_lines = (tmp_path / 'gmres' / 'gmres_iN01.txt').read_text().splitlines()
    assert gmres_lines[0] == 'iG, |r|'
    assert len(gmres_lines) >= 3


def test_bind_later():
    solver = JFNKSolver()
    with pytest.raises(ValueError):
        solver.solve([1.])

    solver.bind(FunctionResidual(cubic))
    x, stats, _ = solver.solve([1.])
    assert stats.converged


def test_state_must_be_one_dimensional():
    solver = JFNKSolver(FunctionResidual(lambda x: x))
    with pytest.raises(ValueError):
        solver.solve(np.ones((2, 2)))


def test_invalid_parameters():
    with pytest.raises(AssertionError):
        JFNKSolver(pm=Parameters(N_newt=-1))
    with pytest.raises(AssertionError):
        Parameters(eps0=0.).validate()
    with pytest.raises(AssertionError):
        Parameters(prestep='exit').validate()


def test_load_parameters(tmp_path):
    path = tmp_path / 'params.yaml'
    path.write_text('N_newt: 5\ntol_newt: 1e-8\nN_restart: 2\nnu: 0.5\n')
    pm = load_parameters(str(path))

    assert pm.N_newt == 5
    assert pm.tol_newt == 1e-8
    assert isinstance(pm.tol_newt, float)
    assert pm.N_restart == 2
    assert pm.tol_step is None

    path.write_text('N_newton: 5\n')
    with pytest.raises(ValueError):
        load_parameters(str(path))


def test_restarts_accumulate_step():
    n = 30
    rng = np.random.default_rng(0)
    A = 4*np.eye(n) + rng.standard_normal((n, n)) / np.sqrt(n)
    b = np.ones(n)

    pm = Parameters(N_gmres=3, N_restart=20, tol_newt=1e-8)
    x, stats, _ = JFNKSolver(FunctionResidual(lambda x: A @ x - b), pm=pm).solve(np.zeros(n))

    assert stats.converged
    # Few Newton steps: each one gets the full restarted linear solve
    assert stats.iterations <= 3
    npt.assert_allclose(A @ x, b, atol=1e-7)
