import abc

import numpy as np

class Preconditioner(abc.ABC):
    ''' Abstract right preconditioner

    All preconditioners must implement:
        - apply: action of the preconditioner on a vector

    The Newton solver calls initialize(x) once per solve and update(x) once per
    accepted Newton step.
    '''
    def initialize(self, x):
        pass

    def update(self, x):
        pass

    @abc.abstractmethod
    def apply(self, v):
        return v


class IdentityPreconditioner(Preconditioner):
    def apply(self, v):
        return v


class JacobiPreconditioner(Preconditioner):
    ''' Inverse of a pointwise (block-diagonal) Jacobian approximation

    Parameters
    ----------
    diagonal: callable
        Returns the diagonal of the Jacobian at state x. Recomputed at initialize and update.
    '''
    def __init__(self, diagonal):
        self.diagonal = diagonal
        self.inv_diag = None

    def _factor(self, x):
        d = np.asarray(self.diagonal(x), dtype=float)
        inv_diag = np.ones_like(d)
        inv_diag[d != 0.] = 1. / d[d != 0.]
        self.inv_diag = inv_diag

    def initialize(self, x):
        self._factor(x)

    def update(self, x):
        self._factor(x)

    def apply(self, v):
        if self.inv_diag is None:
            raise RuntimeError('JacobiPreconditioner used before initialize')
        return self.inv_diag * v
