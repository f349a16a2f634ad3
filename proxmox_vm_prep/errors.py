"""Exception taxonomy for provisioning steps."""


class SetupError(Exception):
    """Base exception for setup errors."""

    pass


class ExecutionError(SetupError):
    """Raised when command execution fails."""

    def __init__(self, message: str, returncode: int = 1) -> None:
        super().__init__(message)
        self.returncode = returncode


class ConfigurationError(SetupError):
    """Raised when configuration changes fail."""

    pass


class ValidationError(SetupError):
    """Raised when user input or a config file fails validation."""

    pass


class FatalStepError(SetupError):
    """Raised when a failure leaves no later step worth attempting."""

    pass


class MissingInputError(SetupError):
    """Raised when the user leaves a required answer empty."""

    pass
