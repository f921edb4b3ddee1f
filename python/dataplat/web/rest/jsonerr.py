"""
Support for JSON-formatted error content for HTTP responses.

A client should use the HTTP status to determine whether a request failed; however, a service
usually has more to say about what went wrong than fits in the status line.  This module provides
a consistent model for returning that information as a JSON object.  At a minimum, the object
contains:

``http:status``
     the HTTP status number (e.g. 400, 503, etc.); this matches the value in the response header.

``http:reason``
     the short text describing the error; this matches the reason given in the response header.

``dp:message``
     a longer message explaining what went wrong.

Implementations may add other properties.  :py:func:`is_error_msg` can be used by clients to
recognize a response body that follows this model.
"""
import json
from logging import Logger
from collections import OrderedDict
from typing import Mapping, Callable

from .base import Handler

MESSAGE_PROP = "dp:message"

def is_error_msg(msgobj: Mapping):
    """
    return True if the given dictionary represents a JSON-formatted error message
    """
    if not isinstance(msgobj, Mapping):
        return False
    return "http:status" in msgobj and MESSAGE_PROP in msgobj

def make_message(code: int, reason: str, message: str=None, extra: Mapping=None):
    """
    create a compliant error message object from the inputs
    """
    out = OrderedDict([
        ("http:status", code),
        ("http:reason", reason),
        (MESSAGE_PROP, message or reason)
    ])
    if extra:
        out.update(extra)
    return out

class FatalError(Exception):
    """
    an exception that carries the data for an error response up the call stack to the handler
    that will send it.
    """
    def __init__(self, code: int, reason: str, explain=None, extra=None):
        """
        :param int    code:  the HTTP code to respond with
        :param str  reason:  the reason to return as the HTTP status message
        :param str explain:  the fuller explanation of the error, returned only in the body
        :param dict  extra:  additional properties to include in the output message object.
        """
        if not explain:
            explain = reason or ''
        super(FatalError, self).__init__(explain)
        self.code = code
        self.reason = reason
        self.explain = explain
        self.data = extra

    def to_dict(self):
        return make_message(self.code, self.reason, self.explain, self.data)

    def to_json(self, indent=None):
        return json.dumps(self.to_dict(), indent=indent)

class ErrorHandling:
    """
    a Handler mixin class that provides methods for returning error message objects to web clients.
    """

    def send_error_obj(self, code: int, reason: str, explain=None, extra=None, ashead=False,
                       contenttype="application/json"):
        """
        send a JSON-formatted error message back to the web client
        :param int    code:  the HTTP code to respond with
        :param str  reason:  the reason to return as the HTTP status message
        :param str explain:  the fuller explanation of the error, returned only in the body
        :param dict  extra:  additional properties to include in the output message object.
        """
        return self.send_fatal_error(FatalError(code, reason, explain, extra), ashead, contenttype)

    def send_fatal_error(self, fatalex: FatalError, ashead=False, contenttype="application/json"):
        """
        report a FatalError as a JSON-formatted error message back to the web client
        """
        return self.send_error(fatalex.code, fatalex.reason, fatalex.to_json(), contenttype, ashead)

class HandlerWithJSON(Handler, ErrorHandling):
    """
    a Handler that returns its error responses formatted in JSON.
    """

    def __init__(self, path: str, wsgienv: dict, start_resp: Callable, tenant: str=None,
                 config: dict={}, log: Logger=None, app=None):
        Handler.__init__(self, path, wsgienv, start_resp, tenant, config, log, app)
