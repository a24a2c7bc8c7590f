''' Incremental QR factorization with Householder reflections '''

import numpy as np


def signum(s):
    '''Sign of s, with signum(0) = +1'''
    return 1.0 if s >= 0 else -1.0


def householder_vector(v):
    """
    Returns the unit Householder vector h that reflects v onto the first axis.

    h = -sign(v_0)*|v|*e_1 - v, normalized. The sign choice avoids cancellation
    in the first entry. A zero v gives a zero h, i.e. the identity reflection.
    """
    h = -v
    h[0] -= signum(v[0]) * np.linalg.norm(v)
    h_norm = np.linalg.norm(h)
    if h_norm == 0.:
        return h
    return h / h_norm


def reflect(h, v):
    '''Applies I - 2hh^T to v'''
    return v - 2.0 * h * (h @ v)


class HouseholderQR():
    """QR factorization of an implicitly generated matrix, built one column at a time.

    Reflection m only acts on coordinates m..N-1, so the Householder vectors are
    stored in the lower part of H with zeros above the diagonal. R keeps the full
    transformed columns: entries below the diagonal are round-off and are zeroed
    by `triangular`.

    Parameters
    ----------
    n_rows: int
        Length of the columns (problem dimension N).
    max_columns: int
        Maximum number of columns the arena can hold (<= n_rows).
    """
    def __init__(self, n_rows, max_columns):
        if max_columns > n_rows:
            raise ValueError(f'max_columns ({max_columns}) cannot exceed n_rows ({n_rows})')
        self.n_rows = n_rows
        self.max_columns = max_columns
        self.H = np.zeros((n_rows, max_columns))
        self.R = np.zeros((n_rows, max_columns))
        self.k = 0

    @property
    def size(self):
        return self.k

    def reset(self):
        '''Starts a new factorization, reusing the allocated arrays'''
        self.H[:] = 0.
        self.R[:] = 0.
        self.k = 0

    def extend(self, column):
        """
        Folds a new column into the factorization and returns the new column count.

        Previous reflections are applied on their active ranges, a new reflection is
        built for the trailing sub-vector and applied to the trailing block of all
        columns so far, leaving R[:k, :k] upper triangular.
        """
        k = self.k
        if k >= self.max_columns:
            raise IndexError(f'QR arena is full ({self.max_columns} columns)')

        v = np.array(column, dtype=float)
        if v.shape != (self.n_rows,):
            raise ValueError(f'column must have shape ({self.n_rows},), got {v.shape}')

        for m in range(k):
            v[m:] = reflect(self.H[m:, m], v[m:])

        h = householder_vector(v[k:])
        self.H[k:, k] = h
        self.R[:, k] = v

        # Bring the trailing block into upper triangular form
        block = self.R[k:, :k+1]
        self.R[k:, :k+1] = block - 2.0 * np.outer(h, h @ block)

        self.k = k + 1
        return self.k

    def q_column(self, j):
        '''Column j (0-based) of the orthogonal factor: H_0 ... H_j e_j'''
        if not 0 <= j < self.k:
            raise IndexError(f'column {j} not available, factorization has {self.k} columns')
        q = np.zeros(self.n_rows)
        q[j] = 1.
        for m in range(j, -1, -1):
            q[m:] = reflect(self.H[m:, m], q[m:])
        return q

    def q_factor(self):
        '''Orthogonal factor columns 0..k-1 as an N x k matrix'''
        Q = np.zeros((self.n_rows, self.k))
        for j in range(self.k):
            Q[:, j] = self.q_column(j)
        return Q

    def triangular(self):
        '''R[:k, :k] with the strictly lower round-off explicitly zeroed'''
        return np.triu(self.R[:self.k, :self.k])
