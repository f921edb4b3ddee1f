"""
The system API business service.

A :py:class:`SystemService` gives access to a single tenant's applications and services and to
the application package engine.  It carries no knowledge of the web layer; the REST interface
(:py:mod:`~dataplat.sysapi.wsgi`) and the command-line tool (:py:mod:`~dataplat.sysapi.cli`) are
thin layers over it.  Instances are created on behalf of a tenant by a
:py:class:`SystemServiceFactory`.
"""
from collections import OrderedDict
from collections.abc import Mapping
from logging import Logger
from typing import List

from . import dbio, SysAPISystem
from .records import AppStore, ServiceStore, MAX_RECORDS_RETURNED
from .dispatch import ServiceDispatcher
from .package import Packager

__all__ = ["SystemService", "SystemServiceFactory"]

class SystemService(SysAPISystem):
    """
    the system API's service to a single tenant.  It wires together the tenant's record stores,
    its service dispatcher, and a :py:class:`~dataplat.sysapi.package.Packager`, all sharing a
    single :py:class:`~dataplat.sysapi.dbio.DBClient` so that a package import can be committed or
    rolled back as a whole.

    See :py:class:`~dataplat.sysapi.package.Packager` and
    :py:class:`~dataplat.sysapi.dispatch.ServiceDispatcher` for the configuration parameters
    this service supports.
    """

    def __init__(self, dbclient_factory: dbio.DBClientFactory, config: Mapping={},
                 tenant: str=None, log: Logger=None):
        """
        create the service
        :param DBClientFactory dbclient_factory:  the factory to create the tenant's DBClient with
        :param dict   config:  the system API configuration
        :param str    tenant:  the tenant that the service acts on behalf of
        :param Logger    log:  the logger to use for log messages
        """
        super(SystemService, self).__init__("System Service", "sys")
        self.cfg = config
        if not tenant:
            tenant = self.cfg.get('default_tenant', dbio.DEF_TENANT)
        if not log:
            log = self.getSysLogger()
        self.log = log.getChild(tenant)

        self.dbcli = dbclient_factory.create_client(tenant, self.cfg.get('dbio', {}))
        self.apps = AppStore(self.dbcli, self.log.getChild("apps"))
        self.services = ServiceStore(self.dbcli, self.log.getChild("services"))
        self.dispatcher = ServiceDispatcher(self.services, self.cfg, self.log.getChild("dispatch"))
        self.packager = Packager(self.dbcli, self.apps, self.services, self.dispatcher, self.cfg,
                                 self.log.getChild("packager"))

    @property
    def tenant(self) -> str:
        return self.dbcli.tenant

    def store_for(self, resource: str):
        """
        return the record store for a system resource type ("app" or "service"), or None if the
        resource type is not recognized
        """
        if resource == dbio.APP_COLL:
            return self.apps
        if resource == dbio.SERVICE_COLL:
            return self.services
        return None

    def list_records(self, resource: str, ids: List=None, limit: int=None, offset: int=0,
                     include_count: bool=False) -> Mapping:
        """
        return a listing of the records of a system resource type.
        :param str resource:  the resource type ("app" or "service")
        :param list    ids:  restrict the listing to these identifiers
        :param int   limit:  the maximum number of records to return (capped at 1000)
        :param int  offset:  the number of records to skip
        :param bool include_count:  if True, include the total number of matching records as the
                             ``count`` property of a ``meta`` object
        :return:  an object with the records in the list given by the ``resource_wrapper`` property
        """
        store = self.store_for(resource)
        recs = store.select(ids, limit, offset)
        out = OrderedDict([(self.cfg.get('resource_wrapper', "resource"), recs)])
        if include_count:
            if ids is not None:
                count = len(store.select(ids, MAX_RECORDS_RETURNED, 0))
            else:
                count = store.count()
            out['meta'] = {"count": count}
        return out

class SystemServiceFactory(object):
    """
    a factory object that creates SystemService instances attached to the backend DB implementation
    and which act on behalf of a specific tenant.
    """

    def __init__(self, dbclient_factory: dbio.DBClientFactory, config: Mapping={}, log: Logger=None):
        """
        create a service factory associated with a particular DB backend.
        :param DBClientFactory dbclient_factory:  the factory instance to use to create a DBClient to
                                 talk to the DB backend.
        :param Mapping  config:  the configuration for the service
        :param Logger      log:  the Logger to use in the service.
        """
        self._dbclifact = dbclient_factory
        self._cfg = config
        self._log = log

    def create_service_for(self, tenant: str=None) -> SystemService:
        """
        create a service that acts on behalf of a specific tenant.
        """
        return SystemService(self._dbclifact, self._cfg, tenant, self._log)
