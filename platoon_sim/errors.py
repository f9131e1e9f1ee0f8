"""
Error Taxonomy

Exceptions raised by the platoon simulator. Engine-level errors are fatal
to the run and always propagate to the caller; the safety monitor never
raises; warning-kind errors are logged and dropped by the warning system.
"""


class PlatoonSimError(Exception):
    """Base class for all simulator errors"""


class ConfigurationError(PlatoonSimError, ValueError):
    """Invalid or out-of-range configuration, raised at construction"""


class InvalidInitialState(PlatoonSimError):
    """The initial platoon layout failed the start-up sanity check"""


class NumericDivergence(PlatoonSimError, ArithmeticError):
    """NaN or Inf produced while integrating truck kinematics"""

    def __init__(self, message: str, time: float = 0.0, field: str = ""):
        super().__init__(message)
        self.time = time
        self.field = field


class InvalidWarningKind(PlatoonSimError, KeyError):
    """Warning raised with a kind the warning system does not know"""

    def __str__(self):
        return str(self.args[0]) if self.args else "invalid warning kind"


__all__ = [
    'PlatoonSimError',
    'ConfigurationError',
    'InvalidInitialState',
    'NumericDivergence',
    'InvalidWarningKind'
]
