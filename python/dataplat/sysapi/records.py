"""
Persistence of the system API's application and service records.

:py:class:`AppStore` and :py:class:`ServiceStore` wrap a tenant-bound
:py:class:`~dataplat.sysapi.dbio.DBClient` and manage the records in its ``app`` and ``service``
collections.  Records are plain dictionaries with an integer ``id`` assigned on creation; names are
unique within a tenant.
"""
import time
from collections.abc import Mapping
from logging import Logger
from typing import List, Iterable

from . import dbio
from .exceptions import BadRequest, NotFound, AlreadyExists, InternalError
from . import system

__all__ = ["AppStore", "ServiceStore", "MAX_RECORDS_RETURNED"]

MAX_RECORDS_RETURNED = 1000

def _as_id(id):
    if isinstance(id, bool):
        return None
    if isinstance(id, int):
        return id
    try:
        return int(str(id).strip())
    except ValueError:
        return None

class RecordStore(object):
    """
    a base class for the stores of named records kept in a single database collection
    """
    collection = None
    required = ("name",)

    def __init__(self, dbclient: dbio.DBClient, log: Logger=None):
        self.dbcli = dbclient
        if not log:
            log = system.getSysLogger().getChild(self.collection)
        self.log = log

    @property
    def tenant(self) -> str:
        return self.dbcli.tenant

    def _check_record(self, record: Mapping):
        if not isinstance(record, Mapping):
            raise BadRequest("%s record must be an object" % self.collection)
        for prop in self.required:
            if not isinstance(record.get(prop), str) or not record.get(prop).strip():
                raise BadRequest("%s record is missing required string property, %s" %
                                 (self.collection, prop))

    def create(self, record: Mapping) -> dict:
        """
        save a new record, assigning it a new identifier
        :param Mapping record:  the record properties; a ``name`` property is required
        :return:  the saved record, including its assigned ``id``
        :raises BadRequest:     if the record is missing required properties
        :raises AlreadyExists:  if a record with the same name already exists for the tenant
        """
        self._check_record(record)
        if self.find_by_name(record['name']):
            raise AlreadyExists("A %s named '%s' already exists" % (self.collection, record['name']))

        rec = dict(record)
        rec['id'] = self.dbcli.next_id(self.collection)
        rec['created'] = time.time()
        try:
            out = self.dbcli.insert(self.collection, rec)
        except dbio.DBIOException as ex:
            raise InternalError("Failed to save %s record: %s" % (self.collection, str(ex)), cause=ex)
        self.log.debug("Created %s record %s (%s)", self.collection, rec['id'], rec['name'])
        return out

    def find(self, id) -> dict:
        """
        return the record with the given identifier or None if it does not exist.  The identifier
        may be given as an integer or as a string representation of one.
        """
        id = _as_id(id)
        if id is None:
            return None
        return self.dbcli.get(self.collection, id)

    def get(self, id) -> dict:
        """
        return the record with the given identifier
        :raises NotFound:  if the record does not exist
        """
        rec = self.find(id)
        if rec is None:
            raise NotFound("Record with identifier '%s' not found." % str(id))
        return rec

    def find_by_name(self, name: str) -> dict:
        """
        return the record with the given name or None if it does not exist
        """
        for rec in self.dbcli.select(self.collection, name=name):
            return rec
        return None

    def find_by_type(self, type: str) -> List[dict]:
        """
        return the records of the given type, ordered by identifier
        """
        return sorted(self.dbcli.select(self.collection, type=type), key=lambda r: r['id'])

    def select(self, ids: Iterable=None, limit: int=None, offset: int=0) -> List[dict]:
        """
        return a list of records ordered by identifier.
        :param ids:         if given, restrict the returned records to those with these identifiers
        :param int limit:   the maximum number of records to return; this is capped at
                            MAX_RECORDS_RETURNED
        :param int offset:  the number of (matching) records to skip over
        """
        if limit is None or limit < 0 or limit > MAX_RECORDS_RETURNED:
            limit = MAX_RECORDS_RETURNED
        if not offset or offset < 0:
            offset = 0

        if ids is not None:
            out = []
            for id in ids:
                rec = self.find(id)
                if rec is not None:
                    out.append(rec)
            out.sort(key=lambda r: r['id'])
        else:
            out = sorted(self.dbcli.select(self.collection), key=lambda r: r['id'])

        return out[offset:offset+limit]

    def count(self) -> int:
        """
        return the total number of records owned by the tenant
        """
        return sum(1 for r in self.dbcli.select(self.collection))

class AppStore(RecordStore):
    """
    the store of application records.  Each application record carries the fields of an
    application descriptor (see :py:class:`~dataplat.sysapi.package.manifest.AppDescriptor`).
    """
    collection = dbio.APP_COLL

class ServiceStore(RecordStore):
    """
    the store of service records.  Each record gives a service's ``name``, its ``type`` (which
    selects its implementation), and its ``config``.
    """
    collection = dbio.SERVICE_COLL
    required = ("name", "type")

    def default_for_type(self, type: str) -> dict:
        """
        return the first (lowest identifier) service of the given type or None if there is none
        """
        svcs = self.find_by_type(type)
        return svcs[0] if svcs else None
