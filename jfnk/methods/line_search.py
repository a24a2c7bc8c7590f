''' Inexact line search along a Newton direction '''

import numpy as np

from .householder import signum


def _derivative_roots(a, b, c):
    '''Real roots of a*s^2 + b*s + c, computed without cancellation'''
    if a == 0.:
        return [-c / b] if b != 0. else []
    disc = b**2 - 4*a*c
    if disc < 0.:
        return []
    q = -0.5 * (b + signum(b) * np.sqrt(disc))
    if q == 0.:
        return [0.]
    return [q / a, c / q]


def _cubic_step(r0, sbeta, rbeta, sgamma, rgamma):
    """
    Minimizer of the cubic model of the residual norm along the step.

    The model is r(s) = a'*s^3 + b'*s^2 - r0*s + r0 through the two latest samples
    (sbeta, rbeta) and (sgamma, rgamma). Its derivative a*s^2 + b*s + c is solved and
    the smallest root in (0, 1) with positive curvature is returned. When there is no
    such root, or the samples are degenerate or non-finite, the scale is bisected.
    """
    detA = sbeta**2 * sgamma**2 * (sbeta - sgamma)
    if detA == 0. or not np.isfinite(detA) or not np.isfinite(rbeta + rgamma):
        return 0.5 * sbeta

    b1 = sbeta**2 * (rgamma + r0*(sgamma - 1))
    b2 = sgamma**2 * (rbeta + r0*(sbeta - 1))
    c = -r0
    b = 2 * (sbeta*b1 - sgamma*b2) / detA
    a = -3 * (b1 - b2) / detA

    opts = [s for s in _derivative_roots(a, b, c)
            if 0. < s < 1. and 2*a*s + b > 0.]
    if not opts:
        return 0.5 * sbeta
    return min(opts)


def inexact_line_search(phi, r0, rbeta, tol=100*np.finfo(float).eps, maxiter=50, trace=None):
    """
    Shrinks a step that increased the residual norm.

    phi(s) is the residual norm at scale s of the step, with phi(0) = r0 and
    phi(1) = rbeta > r0. A quadratic model gives the first trial scale; cubic
    backtracking on the three latest samples follows until the residual does not
    exceed r0, the scale stops changing, or maxiter cubic steps are done.

    Parameters
    ----------
    phi: callable
        Residual norm as a function of the step scale.
    r0: float
        Residual norm at s = 0.
    rbeta: float
        Residual norm at s = 1.
    tol: float, optional
        Threshold on the change of scale between iterations.
    maxiter: int, optional
        Maximum number of cubic backtracking steps.
    trace: list, optional
        If provided, (s, phi(s)) samples are appended to it.

    Returns
    -------
    salpha: float
        Final scale.
    ralpha: float
        Residual norm at the final scale. The caller must check ralpha <= r0.
    """
    # Quadratic optimum
    sbeta = 1.
    if np.isfinite(rbeta):
        salpha = (sbeta**2 * r0) / (2 * (sbeta*r0 + rbeta - r0))
    else:
        salpha = 0.5 * sbeta
    ralpha = phi(salpha)
    if trace is not None:
        trace.append((salpha, ralpha))

    # Cubic optimum
    it = 0
    while not (ralpha <= r0) and abs(sbeta - salpha) > tol and it < maxiter:
        rgamma, sgamma = rbeta, sbeta
        rbeta, sbeta = ralpha, salpha

        salpha = _cubic_step(r0, sbeta, rbeta, sgamma, rgamma)
        ralpha = phi(salpha)
        if trace is not None:
            trace.append((salpha, ralpha))
        it += 1

    return salpha, ralpha
