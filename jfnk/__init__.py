''' Jacobian-Free Newton-Krylov solver with Householder Adaptive Simpler GMRES '''

from .methods import JFNKSolver, Parameters, ReturnStatus, HookSignal, asgmres, load_parameters
from .solvers import FunctionResidual, IdentityPreconditioner, JacobiPreconditioner

__version__ = '0.1.0'
