import abc

import numpy as np

class Guard():
    ''' Default guard: leaves states and steps untouched

    A guard implements:
        - value(x): clamps/validates a state before its first evaluation
        - step(x, dx): adjusts a proposed step. The new state is x - dx.
    '''
    def value(self, x):
        return x

    def step(self, x, dx):
        return dx


class BoundsGuard(Guard):
    ''' Keeps states inside [lower, upper]

    Parameters
    ----------
    lower, upper: float or np.array, optional
        Bounds of the state. None means unbounded.
    relax: float, optional
        Factor applied to the step while x - dx is out of bounds. Default is 0.5.
    max_relax: int, optional
        Maximum number of relaxations. Default is 60.
    '''
    def __init__(self, lower=None, upper=None, relax=0.5, max_relax=60):
        self.lower = -np.inf if lower is None else lower
        self.upper = np.inf if upper is None else upper
        self.relax = relax
        self.max_relax = max_relax

    def outside(self, x):
        return np.any(x < self.lower) or np.any(x > self.upper)

    def value(self, x):
        return np.clip(x, self.lower, self.upper)

    def step(self, x, dx):
        for _ in range(self.max_relax):
            if not self.outside(x - dx):
                break
            dx = self.relax * dx
        return dx


class Residual(abc.ABC):
    ''' Abstract residual evaluator

    All residuals must implement:
        - value: F(x), a pure function of the state

    All residuals have a guard (see Guard) used by the Newton solver.
    The Newton solver looks for F(x) = 0 and updates x <- x - dx with J dx = F(x).
    '''
    def __init__(self, guard: Guard | None = None):
        self.guard = Guard() if guard is None else guard

    @abc.abstractmethod
    def value(self, x):
        return x


class FunctionResidual(Residual):
    ''' Residual given by a plain function F(x) '''
    def __init__(self, func, guard: Guard | None = None):
        super().__init__(guard)
        self.func = func

    def value(self, x):
        return np.asarray(self.func(x), dtype=float)
