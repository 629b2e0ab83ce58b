"""Error types for uniflow."""


class UniflowError(Exception):
    """Base error for all uniflow errors."""
    pass


class ActionHandlerError(UniflowError):
    """An action handler raised while reducing a batch.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, action: tuple, error: BaseException):
        self.action = action
        self.error = error
        super().__init__(f"Action handler failed for {action!r}: {error!r}")


class EffectError(UniflowError):
    """A fire-and-forget effect failed. Logged, never raised out of a round."""

    def __init__(self, effect, error: BaseException):
        self.effect = effect
        self.error = error
        super().__init__(f"Effect failed {effect!r}: {error!r}")


class WatcherLoopError(UniflowError):
    """Raised when list watchers keep re-triggering each other."""

    def __init__(self, depth: int, actions: list):
        self.depth = depth
        self.actions = actions
        super().__init__(
            f"List watchers fired {depth} rounds in a row without settling. "
            f"Last watcher actions: {actions!r}"
        )
