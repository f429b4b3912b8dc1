"""
Exceptions raised by the combat math library

Probability and expected-value code never raises for out-of-range stats;
these cover the few host and decoding failures that cannot degrade to a number.
"""


class CombatMathError(Exception):
    """Base class for all library errors"""


class RandomSourceUnavailable(CombatMathError, RuntimeError):
    """The operating system could not supply random bytes for dice rolling"""


class ProfileDecodeError(CombatMathError, ValueError):
    """A serialized weapon, unit or ability record could not be decoded"""

    def __init__(self, message: str, record=None):
        super().__init__(message)
        self.record = record
