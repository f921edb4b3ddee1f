"""
The abstract interface for interacting with the system API's database.

This interface is based on the following model:

  *  The database is made up of named *collections* (``app``, ``service``, ``db_table``, ``db_row``)
  *  Each *record* in a collection is a JSON-encodable dictionary with a unique ``id`` property
     and a ``tenant`` property naming the tenant that owns it
  *  A :py:class:`DBClient` is bound to a single tenant; it will only see and modify that tenant's
     records

Writes made through a client can be grouped into a :py:class:`Transaction`, which keeps an undo log
of the records it touches so that the group can be rolled back as a whole.
"""
import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from collections.abc import Mapping, MutableMapping
from typing import Iterator, List

from dataplat.base import DataPlatException
from dataplat.base.config import ConfigurationException

APP_COLL = "app"
SERVICE_COLL = "service"
TABLE_COLL = "db_table"
ROW_COLL = "db_row"
NEXTNUM_COLL = "nextnum"

DEF_TENANT = "default"

__all__ = ["DBClient", "DBClientFactory", "Transaction", "APP_COLL", "SERVICE_COLL", "TABLE_COLL",
           "ROW_COLL", "NEXTNUM_COLL", "DEF_TENANT", "DBIOException", "DBIORecordException",
           "ObjectNotFound", "AlreadyExists", "InvalidRecord", "TransactionError"]


class DBClient(ABC):
    """
    a client connected to the database on behalf of a particular tenant.

    As this class is abstract, implementations provide support for specific storage backends by
    implementing the protected collection access methods (``_upsert``, ``_get_from_coll``,
    ``_select_from_coll``, ``_delete_from``, and ``_next_recnum``).  The public methods layer
    tenant scoping and transaction bookkeeping on top of them.
    """

    def __init__(self, config: Mapping, tenant: str = DEF_TENANT, nativeclient=None):
        """
        initialize the base client.
        :param dict  config:  the configuration data for the client
        :param str   tenant:  the tenant to connect as.  Only records owned by this tenant will be
                              accessible via this instance's methods.
        :param nativeclient:  where applicable, the native client object to use to connect the back
                              end database.  The type and use of this client is implementation-specific
        """
        self._cfg = config
        self._native = nativeclient
        if not tenant:
            tenant = DEF_TENANT
        self._tenant = tenant
        self._txn = None

    @property
    def tenant(self) -> str:
        """
        the name of the tenant whose records this client accesses
        """
        return self._tenant

    def is_connected(self) -> bool:
        """
        return True if this client is currently connected to its underlying database
        """
        return self._native is not None

    @property
    def native(self):
        """
        an instance of the native client specific for the underlying database being used.
        Accessing this property may implicitly cause the client to establish a connection.
        """
        return self._native

    def transaction(self) -> "Transaction":
        """
        begin a transaction.  All writes made through this client until the returned Transaction
        is committed or rolled back will be recorded so that they can be undone.
        :raises TransactionError:  if a transaction is already in progress on this client
        """
        if self._txn is not None:
            raise TransactionError("A transaction is already in progress for tenant "+self.tenant)
        self._txn = Transaction(self)
        return self._txn

    @property
    def in_transaction(self) -> bool:
        """
        True if a transaction is currently in progress on this client
        """
        return self._txn is not None

    def _end_transaction(self, txn):
        if self._txn is txn:
            self._txn = None

    def _note_write(self, collname: str, id):
        # capture the before-image of a record about to be changed
        if self._txn is not None:
            self._txn._record(collname, id)

    def next_id(self, collname: str) -> int:
        """
        return the next available integer identifier for records in the given collection.  Numbers
        consumed are not returned to the sequence, even if the transaction that used them is rolled
        back.
        """
        return self._next_recnum(collname)

    def insert(self, collname: str, recdata: Mapping) -> MutableMapping:
        """
        add a new record to a collection, assigning it to this client's tenant.
        :param str collname:   the name of the collection to add the record to
        :param dict recdata:   the record data, which must include an ``id`` property
        :return:  a copy of the record as saved
        :raises AlreadyExists:  if a record with the same identifier already exists
        :raises InvalidRecord:  if the record does not have an ``id``
        """
        if 'id' not in recdata:
            raise InvalidRecord("Record is missing required 'id' property", collname=collname)
        if self._get_from_coll(collname, recdata['id']) is not None:
            raise AlreadyExists("%s: record with id=%s already exists" % (collname, recdata['id']))
        rec = deepcopy(recdata)
        rec['tenant'] = self.tenant
        self._note_write(collname, rec['id'])
        self._upsert(collname, rec)
        return rec

    def save(self, collname: str, recdata: Mapping) -> bool:
        """
        insert or replace a record owned by this client's tenant.
        :return:  True if the record was added for the first time
        :raises ObjectNotFound:  if a record with the same id exists but belongs to another tenant
        """
        if 'id' not in recdata:
            raise InvalidRecord("Record is missing required 'id' property", collname=collname)
        prev = self._get_from_coll(collname, recdata['id'])
        if prev is not None and prev.get('tenant') != self.tenant:
            raise ObjectNotFound(recdata['id'], collname)
        rec = deepcopy(recdata)
        rec['tenant'] = self.tenant
        self._note_write(collname, rec['id'])
        return self._upsert(collname, rec)

    def get(self, collname: str, id) -> MutableMapping:
        """
        return the record with the given identifier from a collection, or None if it does not
        exist (or belongs to another tenant).
        """
        rec = self._get_from_coll(collname, id)
        if rec is None or rec.get('tenant') != self.tenant:
            return None
        return rec

    def exists(self, collname: str, id) -> bool:
        """
        return True if this tenant owns a record with the given identifier in the named collection
        """
        return self.get(collname, id) is not None

    def select(self, collname: str, **constraints) -> Iterator[MutableMapping]:
        """
        iterate through the tenant's records in a collection whose properties match all of the
        given constraints.
        """
        constraints['tenant'] = self.tenant
        return self._select_from_coll(collname, **constraints)

    def delete(self, collname: str, id) -> bool:
        """
        delete the record with the given identifier.
        :return:  True if the record existed and was deleted
        """
        if self.get(collname, id) is None:
            return False
        self._note_write(collname, id)
        return self._delete_from(collname, id)

    @abstractmethod
    def _next_recnum(self, slot: str) -> int:
        """
        return the next number in the named sequence, starting with 1
        """
        raise NotImplementedError()

    @abstractmethod
    def _upsert(self, coll: str, recdata: Mapping) -> bool:
        """
        insert or update a data record into the specified collection.
        :param str coll:  the name of the record collection to insert the record into.
        :param Mapping recdata:  the record to update or insert.  This dictionary must include an
                          "id" property.  If a record with the same value of "id" exists in the
                          collection, that record will be replaced by this one; otherwise, this
                          record will just be added.
        :return:  True if the record, based on its `id` property, was added for the first time.
        """
        raise NotImplementedError()

    @abstractmethod
    def _get_from_coll(self, collname, id) -> MutableMapping:
        """
        return a record with a given identifier from the specified collection, regardless of
        its tenant, or None if it does not exist.
        """
        raise NotImplementedError()

    @abstractmethod
    def _select_from_coll(self, collname, **constraints) -> Iterator[MutableMapping]:
        """
        return an iterator to the records from a specified collection that match the set of
        given constraints.

        :param str collname:   the logical name of the database collection (e.g. table, etc.) to pull
                               the record from.
        :param dict constraints:  the constraints on properties in the record.  The returned records
                               must all have properties matching the keys in the given constraint
                               dictionary with corresponding matching values
        """
        raise NotImplementedError()

    @abstractmethod
    def _delete_from(self, collname, id) -> bool:
        """
        delete a record with the given id from the named collection.  Nothing should happen if the record
        does not exist in the database collection.
        :return:  True if the record existed and was deleted
        """
        raise NotImplementedError()


class Transaction(object):
    """
    a group of database writes that can be committed or rolled back together.

    A Transaction is obtained from :py:meth:`DBClient.transaction`.  As writes are made through the
    client, the transaction records the state of each touched record before its first change.
    :py:meth:`rollback` restores those before-images in reverse order (deleting records that did
    not exist before).  :py:meth:`commit` simply forgets them.

    A Transaction can be used as a context manager, in which case it is rolled back automatically
    if the block exits without it having been committed:

    .. code-block:: python

       with client.transaction() as txn:
           client.insert(APP_COLL, rec)
           txn.commit()
    """

    def __init__(self, client: DBClient):
        self._client = client
        self._undo = []
        self._seen = set()
        self._done = False

    @property
    def active(self) -> bool:
        """
        True if this transaction has been neither committed nor rolled back
        """
        return not self._done

    def _record(self, collname, id):
        key = (collname, id)
        if key in self._seen:
            return
        self._seen.add(key)
        self._undo.append((collname, id, self._client._get_from_coll(collname, id)))

    def commit(self):
        """
        make the writes in this transaction permanent
        :raises TransactionError:  if the transaction is no longer active
        """
        if self._done:
            raise TransactionError("Transaction already ended")
        self._undo = []
        self._seen = set()
        self._finish()

    def rollback(self):
        """
        undo all writes made since the transaction began
        :raises TransactionError:  if the transaction is no longer active
        """
        if self._done:
            raise TransactionError("Transaction already ended")
        try:
            for collname, id, before in reversed(self._undo):
                if before is None:
                    self._client._delete_from(collname, id)
                else:
                    self._client._upsert(collname, before)
        finally:
            self._undo = []
            self._seen = set()
            self._finish()

    def _finish(self):
        self._done = True
        self._client._end_transaction(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._done:
            self.rollback()
        return False


class DBClientFactory(ABC):
    """
    an abstract class for creating client connections to the database
    """

    def __init__(self, config: Mapping):
        """
        initialize the factory with its configuration.  The configuration provided here serves as
        the default parameters for the client as these can be overridden by the configuration
        parameters provided via :py:meth:`create_client`.
        """
        self._cfg = config

    @property
    def cfg(self):
        return self._cfg

    @abstractmethod
    def create_client(self, tenant: str = DEF_TENANT, config: Mapping = {}) -> DBClient:
        """
        create a client connected to the database on behalf of the given tenant

        :param str     tenant:  the tenant whose records the client should access
        :param Mapping config:  the configuration to pass into the client.  This will be merged into
                                and override the configuration provided to the factory at
                                construction time.
        """
        raise NotImplementedError()


class DBIOException(DataPlatException):
    """
    a general base Exception class for exceptions that occur while interacting with the database
    """
    pass


class DBIORecordException(DBIOException):
    """
    a base Exception class for database exceptions that are associated with a specific record.  This
    class provides the record identifier via a ``record_id`` attribute.
    """

    def __init__(self, recid, message, sys=None):
        super(DBIORecordException, self).__init__(message, sys=sys)
        self.record_id = recid


class InvalidRecord(DBIOException):
    """
    an exception indicating that record data is invalid or incomplete
    """
    def __init__(self, message: str=None, collname: str=None, sys=None):
        if not message:
            message = "Invalid record data"
        if collname:
            message = "%s: %s" % (collname, message)
        super(InvalidRecord, self).__init__(message, sys=sys)
        self.collection = collname


class AlreadyExists(DBIOException):
    """
    an exception indicating a disallowed attempt to create a record that already exists
    """
    pass


class ObjectNotFound(DBIORecordException):
    """
    an exception indicating that the requested record does not exist
    """

    def __init__(self, recid, collname=None, message=None, sys=None):
        """
        initialize this exception
        :param str    recid: the id of the record that was requested
        :param str collname: the collection the record was requested from
        :param str  message: a brief description of the error (what object was not found)
        """
        self.collection = collname
        if not message:
            if collname:
                message = "Requested %s record with id=%s does not exist" % (collname, recid)
            else:
                message = "Requested record with id=%s does not exist" % recid
        super(ObjectNotFound, self).__init__(recid, message, sys)


class TransactionError(DBIOException):
    """
    an exception indicating that a transaction was used incorrectly (e.g. begun while another is
    in progress, or ended twice)
    """
    pass
