r"""
Needle-drop geometry.

A needle of length :math:`L` is dropped on a floor ruled with parallel lines
:math:`D` apart. Its centre lands at distance :math:`x \sim U[0, D/2]` from the
nearest line and it makes an angle :math:`\theta \sim U[0, \pi)` with the lines.
The needle touches a line iff

.. math::
   x \le \frac{L}{2} \sin\theta .

For :math:`L \le D` the crossing probability is :math:`p = 2L / (\pi D)`, which
gives the estimator

.. math::
   \widehat{\pi}_n = \frac{2 L n}{D h},

where :math:`h` is the number of crossings in :math:`n` drops. For
:math:`L > D` the crossing rule above still counts drops touching at least one
line, but the probability becomes

.. math::
   p = \frac{2}{\pi}\left(\arccos\frac{D}{L}
       + \frac{L}{D}\Bigl(1 - \sqrt{1 - (D/L)^2}\Bigr)\right),

so the estimator constant changes accordingly (see :func:`estimator_constant`).
"""

from __future__ import annotations

import math

import numpy as np

from .core import RandomSource, SimulationParameters, TrialOutcome, require_positive

__all__ = ["evaluate", "evaluate_params", "crosses_line", "estimator_constant"]


def crosses_line(offset: float, angle: float, needle_length: float) -> bool:
    """Return ``True`` when a needle at ``offset`` and ``angle`` touches the nearest line."""
    return offset <= (needle_length / 2.0) * math.sin(angle)


def evaluate(needle_length: float, line_spacing: float, rng: RandomSource) -> TrialOutcome:
    r"""
    Drop one needle.

    Parameters
    ----------
    needle_length : float
        Needle length :math:`L > 0`.
    line_spacing : float
        Line spacing :math:`D > 0`.
    rng : RandomSource
        Source of uniform variates, usually a :class:`numpy.random.Generator`.
        The offset is drawn first, then the angle.

    Returns
    -------
    TrialOutcome

    Raises
    ------
    InvalidParameter
        If either length is not positive and finite.

    Examples
    --------
    >>> rng = np.random.default_rng(42)
    >>> out = evaluate(1.0, 2.0, rng)
    >>> 0.0 <= out.offset <= 1.0 and 0.0 <= out.angle < np.pi
    True
    """
    L = require_positive("needle_length", needle_length)
    D = require_positive("line_spacing", line_spacing)
    offset = float(rng.uniform(0.0, D / 2.0))
    angle = float(rng.uniform(0.0, np.pi))
    return TrialOutcome(offset=offset, angle=angle, crosses=crosses_line(offset, angle, L))


def evaluate_params(params: SimulationParameters, rng: RandomSource) -> TrialOutcome:
    """Same as :func:`evaluate` for an already validated :class:`SimulationParameters`."""
    offset = float(rng.uniform(0.0, params.line_spacing / 2.0))
    angle = float(rng.uniform(0.0, np.pi))
    return TrialOutcome(offset=offset, angle=angle, crosses=crosses_line(offset, angle, params.needle_length))


def estimator_constant(needle_length: float, line_spacing: float) -> float:
    r"""
    Factor :math:`c` such that :math:`\widehat{\pi} = c\, n / h`.

    Returns :math:`2L/D` for :math:`L \le D`, and the long-needle correction
    :math:`2\bigl(\arccos(D/L) + (L/D)(1 - \sqrt{1 - (D/L)^2})\bigr)` otherwise.
    The two branches agree at :math:`L = D`.
    """
    L = require_positive("needle_length", needle_length)
    D = require_positive("line_spacing", line_spacing)
    if L <= D:
        return 2.0 * L / D
    ratio = D / L
    return 2.0 * (math.acos(ratio) + (L / D) * (1.0 - math.sqrt(1.0 - ratio * ratio)))
