''' Implicit Euler time stepping on top of a spatial discretization '''

import abc

import numpy as np

from .residual import Residual, Guard

class SpatialDiscretization(abc.ABC):
    ''' Abstract spatial discretization

    All spatial discretizations must implement:
        - rhs: right hand side dq/dt = rhs(q)
    '''
    @abc.abstractmethod
    def rhs(self, q):
        return q

    def update(self, t):
        pass

    def jacobian(self, q):
        raise NotImplementedError(f'{type(self).__name__} does not provide a Jacobian')

    def block_diagonal_jacobian(self, q):
        raise NotImplementedError(f'{type(self).__name__} does not provide a block-diagonal Jacobian')


class ImplicitEuler():
    ''' Backward Euler adapter: q_star(q) = q_last + dt*rhs(q)

    Parameters
    ----------
    spatial: SpatialDiscretization, optional
        Can also be bound later with bind.
    '''
    def __init__(self, spatial: SpatialDiscretization | None = None):
        self.spatial = spatial
        self._q_last = None
        self.dt = 0.

    def bind(self, spatial):
        if not isinstance(spatial, SpatialDiscretization):
            raise TypeError(f'Expected a SpatialDiscretization, got {type(spatial).__name__}')
        self.spatial = spatial

    def update(self, q, t, dt):
        '''Stores the last accepted state and time step and advances the spatial time'''
        self._q_last = np.array(q, dtype=float)
        self.dt = dt
        self.spatial.update(t)

    def q_last(self):
        return self._q_last

    def q_star(self, q):
        return self._q_last + self.dt * self.spatial.rhs(q)

    def jacobian(self, q):
        return self.spatial.jacobian(q)

    def block_diagonal_jacobian(self, q):
        return self.spatial.block_diagonal_jacobian(q)


class ImplicitEulerResidual(Residual):
    ''' Residual of one backward Euler step: F(q) = q - q_last - dt*rhs(q) '''
    def __init__(self, stepper: ImplicitEuler, guard: Guard | None = None):
        super().__init__(guard)
        self.stepper = stepper

    def value(self, q):
        return q - self.stepper.q_star(q)

    def diagonal(self, q):
        '''Diagonal of dF/dq, usable by a JacobiPreconditioner'''
        return 1. - self.stepper.dt * self.stepper.block_diagonal_jacobian(q)
