"""
Routing of requests to the platform's services.

Every service registered with the system API (a database, a file store, ...) is described by a
service record (see :py:class:`~dataplat.sysapi.records.ServiceStore`) whose ``type`` selects the
:py:class:`PlatformService` class that implements it.  The :py:class:`ServiceDispatcher` instantiates
services from their records and routes a verb, resource path, and payload to the named service.

Failures are reported as :py:class:`DispatchFailure` exceptions classified by a
:py:class:`FailureKind` so that callers can decide how to react to them without interpreting
status codes.
"""
import importlib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from logging import Logger

from . import dbio, system
from .exceptions import SysAPIException
from .records import ServiceStore
from dataplat.base.config import ConfigurationException

__all__ = ["FailureKind", "DispatchFailure", "PlatformService", "ServiceDispatcher"]

class FailureKind(Enum):
    """
    the classification of a failed service request.  The value of each kind is the HTTP status
    code that corresponds to it.
    """
    BAD_REQUEST = 400
    NOT_FOUND = 404
    ALREADY_EXISTS = 409
    INTERNAL_ERROR = 500

    @property
    def code(self) -> int:
        return self.value

    @classmethod
    def for_code(cls, code: int) -> "FailureKind":
        """
        return the kind that corresponds to an HTTP-like status code; codes without a direct
        correspondence map to BAD_REQUEST (4xx) or INTERNAL_ERROR (anything else).
        """
        for kind in cls:
            if kind.value == code:
                return kind
        if code and 400 <= code < 500:
            return cls.BAD_REQUEST
        return cls.INTERNAL_ERROR

class DispatchFailure(SysAPIException):
    """
    an exception indicating that a request dispatched to a service failed.  The ``kind`` attribute
    classifies the failure.
    """

    def __init__(self, kind: FailureKind, message: str=None, cause: Exception=None, sys=None):
        if not message:
            message = "Service request failed: " + kind.name.lower().replace('_', ' ')
        super(DispatchFailure, self).__init__(message, kind.code, cause, sys)
        self.kind = kind

class PlatformService(ABC):
    """
    a base class for implementations of the platform's service types.  An instance is created from
    a service record and responds to requests on the resources it provides via
    :py:meth:`handle_request`.
    """

    def __init__(self, record: Mapping, dbclient: dbio.DBClient, config: Mapping=None,
                 log: Logger=None):
        """
        :param Mapping   record:  the service record describing this service
        :param DBClient dbclient: the client to use for persisting the service's data
        :param Mapping   config:  the system API configuration
        :param Logger       log:  the logger to use for messages
        """
        self.rec = record
        self.dbcli = dbclient
        if config is None:
            config = {}
        self.cfg = config
        if not log:
            log = system.getSysLogger().getChild(self.name)
        self.log = log

    @property
    def id(self) -> int:
        return self.rec.get('id')

    @property
    def name(self) -> str:
        return self.rec.get('name')

    @property
    def type(self) -> str:
        return self.rec.get('type')

    @property
    def svccfg(self) -> Mapping:
        """
        the service-specific configuration given in the service record
        """
        return self.rec.get('config') or {}

    @abstractmethod
    def handle_request(self, verb: str, resource: str, options: Mapping=None, payload=None):
        """
        respond to a request on one of this service's resources.
        :param str      verb:  the HTTP-like verb (e.g. "GET", "POST")
        :param str  resource:  the path to the resource within the service
        :param dict  options:  request parameters
        :param       payload:  the request body data
        :return:  the (JSON-encodable) response data
        :raises DispatchFailure:  if the request cannot be satisfied
        """
        raise NotImplementedError()

def _load_class(clspath: str):
    modname, _, clsname = clspath.replace(':', '.').rpartition('.')
    if not modname:
        raise ConfigurationException("service_types: not a fully qualified class name: "+clspath)
    try:
        mod = importlib.import_module(modname)
    except ImportError as ex:
        raise ConfigurationException("service_types: unable to import %s: %s" % (modname, str(ex)))
    if not hasattr(mod, clsname):
        raise ConfigurationException("service_types: %s: class not found in module %s" %
                                     (clsname, modname))
    return getattr(mod, clsname)

class ServiceDispatcher(object):
    """
    a router of requests to the services registered for a tenant.

    Service types are matched to their implementing classes through a registry that by default
    maps ``sql_db`` to :py:class:`~dataplat.sysapi.database.DatabaseService` and ``local_file`` to
    :py:class:`~dataplat.sysapi.storage.LocalFileStorageService`.  More types can be added via
    :py:meth:`register_type` or the ``service_types`` configuration parameter, a mapping of type
    names to fully qualified class names.
    """

    def __init__(self, services: ServiceStore, config: Mapping=None, log: Logger=None):
        """
        :param ServiceStore services:  the store of the tenant's service records
        :param Mapping        config:  the system API configuration
        :param Logger            log:  the logger to use for messages
        """
        self.services = services
        if config is None:
            config = {}
        self.cfg = config
        if not log:
            log = system.getSysLogger().getChild("dispatch")
        self.log = log

        self._types = self._default_types()
        for typename, clspath in self.cfg.get('service_types', {}).items():
            self.register_type(typename, _load_class(clspath))
        self._cache = {}

    @staticmethod
    def _default_types():
        from .database import DatabaseService
        from .storage import LocalFileStorageService
        return {
            DatabaseService.TYPE: DatabaseService,
            LocalFileStorageService.TYPE: LocalFileStorageService
        }

    def register_type(self, typename: str, factory):
        """
        make a service implementation available for a given service type name
        :param str typename:  the service type name as given in service records
        :param factory:       a PlatformService class (or other callable) that accepts a service
                              record, a DBClient, the configuration, and a Logger
        """
        self._types[typename] = factory
        self._cache = {}

    def supports_type(self, typename: str) -> bool:
        return typename in self._types

    def _instantiate(self, rec: Mapping) -> PlatformService:
        if rec['id'] in self._cache:
            return self._cache[rec['id']]
        factory = self._types.get(rec.get('type'))
        if not factory:
            self.log.warning("Service %s has unsupported type: %s", rec.get('name'), rec.get('type'))
            return None
        svc = factory(rec, self.services.dbcli, self.cfg, self.log.getChild(rec['name']))
        self._cache[rec['id']] = svc
        return svc

    def get_service_by_id(self, id) -> PlatformService:
        """
        return the service with the given identifier or None if no such service is registered
        (or its type is not supported)
        """
        rec = self.services.find(id)
        if rec is None:
            return None
        return self._instantiate(rec)

    def get_service(self, name: str) -> PlatformService:
        """
        return the service with the given name or None if no such service is registered
        (or its type is not supported)
        """
        rec = self.services.find_by_name(name)
        if rec is None:
            return None
        return self._instantiate(rec)

    def dispatch(self, verb: str, service_name: str, resource: str, options: Mapping=None,
                 payload=None):
        """
        send a request to a named service
        :param str         verb:  the HTTP-like verb (e.g. "GET", "POST")
        :param str service_name:  the name of the service to send the request to
        :param str     resource:  the path to the resource within the service
        :param dict     options:  request parameters
        :param          payload:  the request body data
        :return:  the service's response data
        :raises DispatchFailure:  if the service is not found or fails to satisfy the request
        """
        svc = self.get_service(service_name)
        if svc is None:
            raise DispatchFailure(FailureKind.NOT_FOUND,
                                  "Service '%s' not found." % service_name)

        self.log.debug("dispatching %s %s/%s", verb, service_name, resource)
        try:
            return svc.handle_request(verb.upper(), resource.strip('/'), options or {}, payload)
        except DispatchFailure:
            raise
        except SysAPIException as ex:
            raise DispatchFailure(FailureKind.for_code(ex.code), ex.message, cause=ex)
        except dbio.DBIOException as ex:
            raise DispatchFailure(FailureKind.INTERNAL_ERROR,
                                  "%s: database failure: %s" % (service_name, str(ex)), cause=ex)
