"""
Error handling module for the RakGame collection tracker.
This module provides consistent error handling across the application.
"""

import inspect
import logging
import traceback
from functools import wraps

from config.environment import Environment

logger = logging.getLogger(__name__)

class AppError(Exception):
    """Base exception class for application errors"""
    def __init__(self, message, error_code=None, details=None):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class AuthenticationError(AppError):
    """No active session; the operation is aborted before any local change"""
    pass

class ValidationError(AppError):
    """Malformed input caught before any network call"""
    pass

class RemoteError(AppError):
    """Network or backend failure during a live call"""
    pass

class NetworkError(RemoteError):
    """The backend could not be reached"""
    pass

class DatabaseError(RemoteError):
    """The backend rejected the request"""
    pass

class QueueReplayError(RemoteError):
    """A queued operation failed while the queue was being drained"""
    pass

class PermanentDropError(AppError):
    """A queued operation exceeded its retry ceiling and was dropped"""
    pass


# Backend error codes with a friendlier message
ERROR_DESCRIPTIONS = {
    'ALREADY_EXISTS': 'This record already exists',
    'FAILED_PRECONDITION': 'Cannot delete: related records exist',
    'PERMISSION_DENIED': 'You do not have permission to perform this action',
    'NOT_FOUND': 'No records found',
    'UNAUTHENTICATED': 'Please sign in to continue',
    'INVALID_PASSWORD': 'Invalid email or password',
    'INVALID_LOGIN_CREDENTIALS': 'Invalid email or password',
    'EMAIL_EXISTS': 'An account with this email already exists',
    'WEAK_PASSWORD': 'Password must be at least 6 characters',
    'EMAIL_NOT_FOUND': 'No account found with this email'
}

ERROR_TITLES = (
    (AuthenticationError, 'Authentication Error'),
    (ValidationError, 'Validation Error'),
    (NetworkError, 'Network Error'),
    (RemoteError, 'Database Error'),
)


def describe_error(error: Exception):
    """
    Build the title and description shown to the user for an error

    Args:
        error: The error to describe

    Returns:
        tuple: (title, description)
    """
    title = 'Error'
    for error_type, error_title in ERROR_TITLES:
        if isinstance(error, error_type):
            title = error_title
            break

    code = getattr(error, 'error_code', None)
    if code in ERROR_DESCRIPTIONS:
        return title, ERROR_DESCRIPTIONS[code]

    description = str(error) or 'An unexpected error occurred. Please try again.'
    return title, description


def _log_unexpected(func_name: str, error: Exception) -> AppError:
    logger.error(f"Unexpected error in {func_name}: {str(error)}")
    if Environment.DEBUG_MODE:
        logger.error(f"Traceback: {traceback.format_exc()}")
    return AppError("An unexpected error occurred", error_code="UNEXPECTED_ERROR", details=str(error))


def _log_app_error(func_name: str, error: AppError) -> None:
    logger.error(f"{type(error).__name__} in {func_name}: {error.message}")
    if Environment.DEBUG_MODE and error.details:
        logger.error(f"Error details: {error.details}")


def handle_error(func):
    """
    Decorator for consistent error handling

    AppErrors are logged and re-raised unchanged. Anything else is logged and
    replaced by an AppError with code UNEXPECTED_ERROR. Works for plain and
    async functions.
    """
    if inspect.iscoroutinefunction(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except AppError as e:
                _log_app_error(func.__qualname__, e)
                raise
            except Exception as e:
                raise _log_unexpected(func.__qualname__, e) from e
        return async_wrapper

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except AppError as e:
            _log_app_error(func.__qualname__, e)
            raise
        except Exception as e:
            raise _log_unexpected(func.__qualname__, e) from e
    return wrapper


def log_error(error, context=None):
    """
    Log an error with context and return it as a result dict

    Args:
        error: The error to log
        context: Additional context information
    """
    message = str(error)
    if context:
        message = f"{message} | Context: {context}"
    logger.error(message)

    show_details = Environment.ERROR_HANDLING['show_detailed_errors']
    return {
        'success': False,
        'message': message,
        'error_code': getattr(error, 'error_code', None) or 'UNKNOWN_ERROR',
        'details': getattr(error, 'details', None) if show_details else None
    }
