"""Problem description handed to the integrators."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Tuple, Union

import numpy as np

from simdriver.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ProblemKind(Enum):
    """Kind of problem: continuous-time ODE or discrete-time map."""

    CONTINUOUS = "continuous"
    DISCRETE = "discrete"

    @classmethod
    def parse(cls, kind: Union[str, "ProblemKind"]) -> "ProblemKind":
        """Return the member for ``kind`` (a member or its name/value).

        Raises
        ------
        ConfigurationError
            If ``kind`` does not name a supported problem kind.
        """
        if isinstance(kind, cls):
            return kind
        if isinstance(kind, str):
            key = kind.strip().lower()
            for member in cls:
                if key in (member.value, member.name.lower()):
                    return member
        raise ConfigurationError(f"Not supported problem kind: {kind!r}")


@dataclass(frozen=True)
class Problem:
    """Immutable description of what to simulate.

    Parameters
    ----------
    f : callable
        In-place dynamics ``f(dx, x, p, t)``.
    u0 : ndarray
        Initial state.
    tspan : (float, float)
        Start and end times ``(t0, tf)``.
    p : any
        Parameters passed to ``f``.
    kind : ProblemKind
        Continuous or discrete.
    """

    f: Callable
    u0: np.ndarray
    tspan: Tuple[float, float]
    p: Any = None
    kind: ProblemKind = ProblemKind.CONTINUOUS

    @property
    def t0(self) -> float:
        return self.tspan[0]

    @property
    def tf(self) -> float:
        return self.tspan[1]

    @property
    def tdir(self) -> int:
        """Direction of travel in time (+1 or -1)."""
        return -1 if self.tf < self.t0 else 1


def build_problem(kind, state0, dyn, p=None, t0=0.0, tf=1.0) -> Problem:
    """Assemble the problem for a dynamics function.

    The dynamics are wrapped so that the integrators only ever see the
    plain four-argument form, whatever other forms ``dyn`` supports.
    """
    kind = ProblemKind.parse(kind)

    def f(dx, x, p, t):
        dyn(dx, x, p, t)

    u0 = np.array(state0, dtype=float)
    u0.setflags(write=False)
    tspan = (float(t0), float(tf))
    logger.debug("Built %s problem on tspan=%s", kind.value, tspan)
    return Problem(f=f, u0=u0, tspan=tspan, p=p, kind=kind)
