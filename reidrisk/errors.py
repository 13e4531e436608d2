"""
Error types raised by the risk estimation engine.

Two families exist:
  - RiskEngineError and its subclasses are ordinary errors (bad arguments,
    rejected preconditions, internal consistency failures).
  - ComputationInterrupted is not an error. It is the cooperative abort raised
    when a caller sets the cancellation token, and it is only caught by the
    session boundary (see session.RiskSession.run).

Numerical non-convergence never raises; it surfaces as NaN estimates.

Author: James Weatherhead, UTMB
"""


class RiskEngineError(Exception):
    """Base class for errors raised by the engine."""


class InvalidArgumentError(RiskEngineError, ValueError):
    """
    An argument is unusable: unknown attribute, empty quasi-identifier set,
    threshold outside [0, 1], sampling fraction outside (0, 1], and so on.
    """


class PreconditionViolatedError(RiskEngineError):
    """
    The input is well-formed but the requested estimate is undefined for it,
    e.g. a population-uniqueness model asked to fit a sample without uniques.
    """


class TrieConsistencyError(RiskEngineError):
    """Two distinct groups collided on the same leaf of the wildcard trie."""


class ComputationInterrupted(Exception):
    """
    Cooperative abort signal.

    Raised from inside long-running loops once the cancellation token has been
    set. Deliberately not a RiskEngineError so that handlers for engine errors
    never swallow it.
    """

    def __init__(self, message: str = "Computation interrupted"):
        super().__init__(message)
