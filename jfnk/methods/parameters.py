from dataclasses import dataclass, fields
from typing import Callable

import numpy as np
import yaml

_FLOAT_FIELDS = ('tol_newt', 'tol_step', 'eps0', 'tol_gmres', 'nu', 'tol_search')

@dataclass
class Parameters:
    """Container for solver configuration and algorithm parameters."""

    # Print directories (None = disabled)
    newton_dir: str|None = None        # Newton iteration report
    gmres_dir: str|None = None         # Krylov residuals of each Newton iteration
    linesearch_dir: str|None = None    # Line-search samples of each Newton iteration

    # Newton-Solver parameters
    N_newt: int = 100                  # Maximum number of Newton iterations
    tol_newt: float = 1e-6             # Tolerance on the nonlinear residual norm
    tol_step: float|None = None        # Tolerance on |dx|_inf relative to |x|_inf. None disables it
    eps0: float = 1e-7                 # Finite-difference step for Jacobian-vector products

    # GMRES
    N_restart: int = 1                 # Number of GMRES cycles per Newton iteration
    N_gmres: int|None = None           # Maximum Krylov steps per cycle. None = problem dimension
    tol_gmres: float = 1e-10           # Absolute tolerance on the linear residual
    nu: float = 0.90                   # Adaptivity threshold for the Krylov basis choice

    # Line search
    N_search: int = 50                             # Maximum number of cubic backtracking steps
    tol_search: float = 100*np.finfo(float).eps    # Threshold on the change of step scale

    # Hooks: functions of the current state returning None, 'exit' or 'notDone'
    presolve: Callable|None = None
    postsolve: Callable|None = None
    prestep: Callable|None = None
    poststep: Callable|None = None

    def validate(self):
        """Basic parameter consistency checks."""
        assert self.N_newt >= 0, "N_newt must be non-negative."
        assert self.tol_newt >= 0, "tol_newt must be non-negative."
        assert self.tol_step is None or self.tol_step > 0, "tol_step must be positive or None."
        assert self.eps0 > 0, "eps0 must be positive."
        assert self.N_restart >= 1, "N_restart must be at least 1."
        assert self.N_gmres is None or self.N_gmres >= 1, "N_gmres must be at least 1 or None."
        assert self.tol_gmres >= 0, "tol_gmres must be non-negative."
        assert self.nu >= 0, "nu must be non-negative."
        assert self.N_search >= 0, "N_search must be non-negative."
        for hook in ('presolve', 'postsolve', 'prestep', 'poststep'):
            func = getattr(self, hook)
            assert func is None or callable(func), f"Hook {hook} must be callable or None."


def load_parameters(path):
    """Loads Parameters from a YAML configuration file. Unknown keys are rejected."""
    with open(path, "r") as f:
        dic = yaml.safe_load(f) or {}

    known = {f.name for f in fields(Parameters)}
    unknown = set(dic) - known
    if unknown:
        raise ValueError(f"Unknown parameters in {path}: {sorted(unknown)}")

    # YAML reads exponent notation without a dot (1e-6) as a string
    for name in _FLOAT_FIELDS:
        if dic.get(name) is not None:
            dic[name] = float(dic[name])

    pm = Parameters(**dic)
    pm.validate()
    return pm
