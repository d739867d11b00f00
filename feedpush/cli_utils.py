"""
Common CLI utilities for consistent command behavior.
"""

import json
import logging
import sys
from functools import wraps

import click

from .exit_codes import INTERRUPTED, get_exit_code_for_exception, CommandError

logger = logging.getLogger("feedpush")


def _error_line(error: BaseException, exit_code: int) -> str:
    return json.dumps({
        "error": str(error),
        "type": type(error).__name__,
        "exit_code": exit_code,
    }, ensure_ascii=False)


def standard_command(func):
    """
    Decorator giving commands the same error behavior:
    - JSON error line on stderr, data on stdout stays clean
    - CommandError exits with its own exit code
    - Other exceptions exit with the code mapped for their type
    - Ctrl+C exits with INTERRUPTED
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            logger.error("Interrupted by user")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            # Click exceptions already have their exit code
            raise
        except CommandError as e:
            click.echo(_error_line(e, e.exit_code), err=True)
            sys.exit(e.exit_code)
        except Exception as e:
            logger.debug("Command failed", exc_info=True)
            exit_code = get_exit_code_for_exception(e)
            click.echo(_error_line(e, exit_code), err=True)
            sys.exit(exit_code)

    return wrapper
