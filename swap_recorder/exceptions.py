# exceptions.py


class RecorderError(Exception):
    """Recording session could not be started or finished"""


class SessionStateError(RecorderError):
    """Lifecycle call made in the wrong session state"""
