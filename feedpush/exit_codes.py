"""
Standard exit codes and error types for feedpush commands.

Following Unix/POSIX conventions for command-line tools.
"""
from typing import Optional

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
API_ERROR = 65           # Feed or promotion endpoint call failed
CONFIG_ERROR = 66        # Configuration file error
NETWORK_ERROR = 68       # Network connection failed or timed out
DATA_ERROR = 70          # Malformed argument (feed url, version, path)
PARTIAL_SUCCESS = 71     # Some feeds published, some failed
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for common exceptions
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': GENERAL_ERROR,
    'ConnectionError': NETWORK_ERROR,
    'TimeoutError': NETWORK_ERROR,
    'ValueError': DATA_ERROR,
    'KeyError': DATA_ERROR,
    'JSONDecodeError': DATA_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    if isinstance(exc, CommandError):
        return exc.exit_code
    exc_name = exc.__class__.__name__
    return EXCEPTION_EXIT_CODES.get(exc_name, GENERAL_ERROR)


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class InvalidArgumentError(CommandError, ValueError):
    """Raised for a malformed feed url, empty name or path, or bad version."""
    def __init__(self, message: str):
        super().__init__(message, DATA_ERROR)


class ConfigError(CommandError):
    """Raised when there's a configuration error."""
    def __init__(self, message: str):
        super().__init__(message, CONFIG_ERROR)


class APIError(CommandError):
    """Raised when an external API call fails."""
    def __init__(self, message: str, exit_code: int = API_ERROR):
        super().__init__(message, exit_code)


class TransportError(APIError):
    """
    Raised when a push, existence check or promotion fails.

    Always fatal for the publish operation of the feed it names.
    """
    def __init__(self, message: str, feed_name: Optional[str] = None,
                 url: Optional[str] = None, exit_code: int = API_ERROR):
        if feed_name:
            message = f"{message} (feed '{feed_name}' => '{url}')"
        super().__init__(message, exit_code)
        self.feed_name = feed_name
        self.url = url


class FeedStateError(CommandError):
    """Raised when a feed lifecycle step is called out of order."""
    def __init__(self, message: str):
        super().__init__(message, USAGE_ERROR)
