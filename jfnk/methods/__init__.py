from .householder import HouseholderQR, householder_vector, signum
from .krylov import (BasisChoice, GMRESWorkspace, asgmres, asgmres_cycle, backsub,
                     select_basis, solve_least_squares)
from .line_search import inexact_line_search
from .newton import HookSignal, JFNKSolver, ReturnStatus, SolveStats
from .parameters import Parameters, load_parameters
