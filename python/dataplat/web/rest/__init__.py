"""
Framework classes for creating REST web interfaces via WSGI

The framework follows a resource-based model: a :py:class:`~dataplat.web.rest.base.ServiceApp`
examines the requested path and creates a :py:class:`~dataplat.web.rest.base.Handler` that responds
to the request for that one resource.  Routing stays explicitly in the hands of the service
implementation.  Several ``ServiceApp`` instances can be combined into a single WSGI application,
served below a common base path, with :py:class:`~dataplat.web.rest.base.WSGIAppSuite`.

The web layer is kept thin: each ``ServiceApp`` wraps a business service class (one that knows
nothing about HTTP) and translates that service's exceptions into HTTP statuses.  Error responses
can carry a JSON body describing the failure (see :py:mod:`~dataplat.web.rest.jsonerr`).

Every request is made on behalf of a *tenant*, the owner scope of the records it touches.  The
tenant is taken from the ``X-DataPlat-Tenant`` request header, defaulting to the configured
``default_tenant``.
"""
from .base import *
from .jsonerr import FatalError, ErrorHandling, HandlerWithJSON, make_message, is_error_msg
