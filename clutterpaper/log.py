"""Plain console logging used by the service."""


def info(text: str) -> None:
    """Print an informational message."""
    print(text)


def debug(text: str) -> None:
    """Print a debug message."""
    print(text)


def warn(text: str) -> None:
    """Print a warning message."""
    print(text)