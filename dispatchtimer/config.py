import os

ABORT_ON_MISUSE_ENV = "DISPATCHTIMER_ABORT_ON_MISUSE"
QUEUE_NAME_ENV = "DISPATCHTIMER_QUEUE_NAME"


def abort_on_misuse() -> bool:
    """
    Whether a timer source contract violation should abort the process instead
    of raising DispatchSourceError.
    """
    return os.environ.get(ABORT_ON_MISUSE_ENV, "0") == "1"


def queue_name(default: str) -> str:
    return os.environ.get(QUEUE_NAME_ENV, default)
