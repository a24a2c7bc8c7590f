from .preconditioner import IdentityPreconditioner, JacobiPreconditioner, Preconditioner
from .residual import BoundsGuard, FunctionResidual, Guard, Residual
from .temporal import ImplicitEuler, ImplicitEulerResidual, SpatialDiscretization
