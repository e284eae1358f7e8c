"""Exception hierarchy shared by all pomtuner modules.

Lower layers always raise one of these; only the CLI turns them into an exit
status and a log message.
"""


class PomTunerError(Exception):
    """Base class of all errors raised by pomtuner."""


class PomStructureError(PomTunerError):
    """A POM is unparsable or the module tree is structurally broken."""


class ExpressionError(PomTunerError):
    """A ``${property}`` placeholder could not be resolved."""


class ConsistencyError(PomTunerError):
    """Values expected to agree across the tree do not.

    Attributes:
        pom_path: The POM where the offending value was found.
        expected: The expected value.
        actual: The value actually found.
    """

    def __init__(self, message: str, pom_path=None, expected=None, actual=None):
        super().__init__(message)
        self.pom_path = pom_path
        self.expected = expected
        self.actual = actual


class TransformationError(PomTunerError):
    """A transformation could not be applied to a POM document."""


class GavSetPatternError(PomTunerError, ValueError):
    """A GAV pattern string is malformed."""


class ArtifactNotFoundError(PomTunerError):
    """An artifact is not available from the artifact resolver."""


class CheckFailedError(PomTunerError):
    """A checking-mode comparison found differences and the policy is FAIL."""


class ConfigurationError(PomTunerError):
    """A configuration file is missing or invalid."""
