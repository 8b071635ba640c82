"""Fit model functions.

Each model is evaluated by a Numba JIT compiled kernel. The public functions
take an array of abscissas followed by the model parameters, which is the
`f(x, *params)` signature expected by :func:`scipy.optimize.curve_fit`.
"""

from warnings import warn

import numba as nb
import numpy as np

__all__ = ["gaussian", "plateau", "plateau_model", "PLATEAU_NPARS"]

# Number of parameters of each variant of the plateau model
PLATEAU_NPARS = {True: 5, False: 8}


def gaussian(x, norm, mean, sigma):
    """Gaussian function, fit target of the X correlation distribution.

    Parameters
    ----------
    x : np.ndarray
        (N) array of abscissas
    norm : float
        Height of the peak
    mean : float
        Position of the peak
    sigma : float
        Standard deviation

    Returns
    -------
    np.ndarray
        (N) array of function values
    """
    x = np.asarray(x, dtype=np.float64)
    return _gaussian(x.ravel(), norm, mean, sigma).reshape(x.shape)


@nb.njit(cache=True)
def _gaussian(
    x: nb.float64[:], norm: nb.float64, mean: nb.float64, sigma: nb.float64
) -> nb.float64[:]:
    result = np.empty(len(x), dtype=np.float64)
    for i in range(len(x)):
        result[i] = norm * np.exp(-0.5 * ((x[i] - mean) / sigma) ** 2)

    return result


def plateau(x, pars, symmetric=True):
    """Plateau function: a flat level bounded by two Gaussian falloffs.

    Below `x0` the function falls off as `y0 + c0 * (exp(-((x - x0)/s0)^2/2) - 1)`,
    between `x0` and `x1` it sits at the plateau level and above `x1` it falls
    off again, mirrored, with `s1` and `c1`.

    Two variants are available:
    - `symmetric=True`: `pars = (x0, x1, y0, sigma, c)`. Both edges share the
      level, the width and the amplitude. This is the model fitted on the Y
      correlation distribution.
    - `symmetric=False`: `pars = (x0, x1, y0, y1, s0, s1, c0, c1)`. The
      widths and amplitudes of the two edges are independent but the right
      level `y1` is read from the same slot as `y0`, so the plateau stays
      flat. This variant is unverified and is not used by the calibration.

    Parameters
    ----------
    x : np.ndarray
        (N) array of abscissas
    pars : List[float]
        Model parameters (see above)
    symmetric : bool, default True
        Which variant of the model to evaluate

    Returns
    -------
    np.ndarray
        (N) array of function values
    """
    pars = np.asarray(pars, dtype=np.float64)
    assert len(pars) == PLATEAU_NPARS[symmetric], (
        f"The {'symmetric' if symmetric else 'general'} plateau model takes "
        f"{PLATEAU_NPARS[symmetric]} parameters, got {len(pars)}."
    )

    if symmetric:
        x0, x1, y0, sigma, c = pars
        s0, s1, c0, c1 = sigma, sigma, c, c
    else:
        warn("The general plateau model is unverified.")
        x0, x1, y0, _, s0, s1, c0, c1 = pars

    x = np.asarray(x, dtype=np.float64)
    values = _plateau(x.ravel(), x0, x1, y0, y0, s0, s1, c0, c1)

    return values.reshape(x.shape)


def plateau_model(x, x0, x1, y0, sigma, c):
    """Symmetric plateau model in the form expected by the fitter.

    Parameters
    ----------
    x : np.ndarray
        (N) array of abscissas
    x0 : float
        Lower end of the plateau
    x1 : float
        Upper end of the plateau
    y0 : float
        Plateau level
    sigma : float
        Width of both falloffs
    c : float
        Amplitude of both falloffs

    Returns
    -------
    np.ndarray
        (N) array of function values
    """
    return plateau(x, (x0, x1, y0, sigma, c))


@nb.njit(cache=True)
def _plateau(
    x: nb.float64[:],
    x0: nb.float64,
    x1: nb.float64,
    y0: nb.float64,
    y1: nb.float64,
    s0: nb.float64,
    s1: nb.float64,
    c0: nb.float64,
    c1: nb.float64,
) -> nb.float64[:]:
    result = np.empty(len(x), dtype=np.float64)
    for i in range(len(x)):
        if x[i] < x0:
            result[i] = y0 + c0 * (np.exp(-(((x[i] - x0) / s0) ** 2) / 2.0) - 1.0)
        elif x[i] > x1:
            result[i] = y1 + c1 * (np.exp(-(((x[i] - x1) / s1) ** 2) / 2.0) - 1.0)
        elif x1 > x0:
            result[i] = y0 + (y1 - y0) * (x[i] - x0) / (x1 - x0)
        else:
            result[i] = y0

    return result
