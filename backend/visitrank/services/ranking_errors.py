"""
Exceptions raised by the ranking engine.
"""


class RankingStateError(RuntimeError):
    """
    Raised when a session is driven out of order — a comparison submitted after
    completion, a result requested before it, or any call on a cancelled session.

    This is always a programming error on the caller's side.
    """
