"""Session subsystem exceptions."""


class RelayError(Exception):
    """Base class for turnrelay errors."""


class UserCancelledError(RelayError):
    """Raised when a cancellation scope fires during a suspension point."""


class ThreadStartError(RelayError):
    """Raised when thread start or resume returns no usable thread id."""
