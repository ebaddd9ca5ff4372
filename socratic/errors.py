"""Guard conditions raised by the engines. Callers treat these as ignorable no-ops."""


class GuardError(Exception):
    """An action was refused without changing any state."""


class ConcurrentCallRejected(GuardError):
    """A generating call is already outstanding for this session or seat."""


class PreconditionFailed(GuardError):
    """The action is not allowed in the current state (e.g. intent with no history)."""
