"""
The section-specific import steps of a package import.

Each importer takes the decoded content of one package section and creates what it describes:

  * :py:class:`ServicesImporter` saves service definitions directly to the service store.
  * :py:class:`SchemaImporter` creates tables by dispatching ``POST _schema`` to each database
    service.
  * :py:class:`DataImporter` loads records by dispatching ``POST _table/{name}`` to each database
    service.

The schema and data importers distinguish fatal failures from tolerable ones by the
:py:class:`~dataplat.sysapi.dispatch.FailureKind` of the failure: a missing service or table
(``NOT_FOUND``) or a service failure (``INTERNAL_ERROR``) aborts the import; anything else (e.g.
a table that ``ALREADY_EXISTS``) is logged and skipped.
"""
from collections.abc import Mapping
from logging import Logger
from typing import List

from ..dispatch import ServiceDispatcher, DispatchFailure, FailureKind
from ..records import ServiceStore
from ..exceptions import SysAPIException, InternalError
from ..database import DEF_RESOURCE_WRAPPER
from .manifest import ServiceDefinition
from .. import system, dbio

__all__ = ["ServicesImporter", "SchemaImporter", "DataImporter", "FATAL_FAILURES"]

FATAL_FAILURES = (FailureKind.NOT_FOUND, FailureKind.INTERNAL_ERROR)

class ServicesImporter(object):
    """
    an importer that creates the services defined in a package
    """

    def __init__(self, services: ServiceStore, log: Logger=None):
        self.services = services
        if not log:
            log = system.getSysLogger().getChild("import.services")
        self.log = log

    def run(self, svcdefs: List[ServiceDefinition]) -> int:
        """
        save the given service definitions
        :return:  the number of services created
        :raises InternalError:  if any of the services could not be saved
        """
        count = 0
        for svc in svcdefs or []:
            if isinstance(svc, Mapping):
                svc = ServiceDefinition.from_dict(svc)
            try:
                self.services.create(svc.to_dict())
            except (SysAPIException, dbio.DBIOException) as ex:
                raise InternalError("Could not create the services.\n%s" % str(ex), cause=ex)
            count += 1
            self.log.debug("imported service definition: %s", svc.name)
        return count

class _DispatchingImporter(object):
    def __init__(self, dispatcher: ServiceDispatcher, wrapper: str=DEF_RESOURCE_WRAPPER,
                 log: Logger=None):
        self.dispatcher = dispatcher
        self.wrapper = wrapper
        if not log:
            log = system.getSysLogger().getChild("import."+self._logname)
        self.log = log

    def _submit(self, service: str, resource: str, items: List) -> bool:
        try:
            self.dispatcher.dispatch("POST", service, resource, payload={ self.wrapper: items })
            return True
        except DispatchFailure as ex:
            if ex.kind in FATAL_FAILURES:
                raise
            self.log.warning("%s/%s: skipping import (%s): %s", service, resource,
                             ex.kind.name, ex.message)
            return False

class SchemaImporter(_DispatchingImporter):
    """
    an importer that creates the database tables defined in a package
    """
    _logname = "schema"

    def run(self, schemas: Mapping) -> int:
        """
        create the given tables
        :param Mapping schemas:  a mapping of service names to lists of table definitions
        :return:  the number of table definitions submitted
        :raises DispatchFailure:  if a service was not found or failed internally
        """
        count = 0
        for svcname, tables in (schemas or {}).items():
            if not tables:
                continue
            self._submit(svcname, "_schema", tables)
            count += len(tables)
        return count

class DataImporter(_DispatchingImporter):
    """
    an importer that loads the table records contained in a package
    """
    _logname = "data"

    def run(self, data: Mapping) -> int:
        """
        insert the given records
        :param Mapping data:  a mapping of service names to mappings of table names to record lists
        :return:  the number of records submitted
        :raises DispatchFailure:  if a service or table was not found or a service failed internally
        """
        count = 0
        for svcname, tables in (data or {}).items():
            for tblname, records in tables.items():
                self._submit(svcname, "_table/"+tblname, records)
                count += len(records)
        return count
