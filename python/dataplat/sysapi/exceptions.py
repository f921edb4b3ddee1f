"""
The exceptions raised by the system API.

Each :py:class:`SysAPIException` carries an HTTP-like status ``code`` so that the web and command-line
front ends can report failures uniformly.
"""
from dataplat.base import DataPlatException

__all__ = ["SysAPIException", "BadRequest", "NotFound", "AlreadyExists", "InternalError",
           "FormatError", "ArchiveIOError"]

class SysAPIException(DataPlatException):
    """
    a base exception for failures of system API operations.  The ``code`` attribute gives the
    HTTP status that best describes the failure.
    """
    code = 500

    def __init__(self, message: str=None, code: int=None, cause: Exception=None, sys=None):
        super(SysAPIException, self).__init__(message, cause, sys)
        if code is not None:
            self.code = code

class BadRequest(SysAPIException):
    """
    the caller's input (a request parameter or the content of a package) is invalid
    """
    code = 400

    def __init__(self, message: str=None, cause: Exception=None, sys=None):
        if not message:
            message = "Bad request"
        super(BadRequest, self).__init__(message, cause=cause, sys=sys)

class FormatError(BadRequest):
    """
    a package file, or one of its parts, is not in the expected format
    """
    pass

class NotFound(SysAPIException):
    """
    a requested record or resource does not exist
    """
    code = 404

    def __init__(self, message: str=None, cause: Exception=None, sys=None):
        if not message:
            message = "Requested resource not found"
        super(NotFound, self).__init__(message, cause=cause, sys=sys)

class AlreadyExists(SysAPIException):
    """
    an attempt was made to create a resource that already exists
    """
    code = 409

    def __init__(self, message: str=None, cause: Exception=None, sys=None):
        if not message:
            message = "Resource already exists"
        super(AlreadyExists, self).__init__(message, cause=cause, sys=sys)

class InternalError(SysAPIException):
    """
    an operation failed for reasons not attributable to the caller's input
    """
    code = 500

    def __init__(self, message: str=None, cause: Exception=None, sys=None):
        if not message:
            message = "Internal system error"
        super(InternalError, self).__init__(message, cause=cause, sys=sys)

class ArchiveIOError(InternalError):
    """
    a package archive could not be opened, read, or written
    """
    pass
