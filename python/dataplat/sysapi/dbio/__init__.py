"""
dbio:  the persistence layer of the system API.

The system API keeps its records (applications, services, and the tables and rows of the
platform's database services) in a common database made up of named *collections*.  Access starts
by obtaining a :py:class:`~dataplat.sysapi.dbio.base.DBClient` for a particular tenant from a
:py:class:`~dataplat.sysapi.dbio.base.DBClientFactory`:

.. code-block::
   :caption: Example use of the dbio module

   from dataplat.sysapi import dbio

   client = dbio.InMemoryDBClientFactory({}).create_client("acme")

   with client.transaction() as txn:
       client.insert(dbio.APP_COLL, { "id": client.next_id(dbio.APP_COLL), "name": "inventory" })
       txn.commit()

A client only sees the records of its tenant.  Writes made while a
:py:class:`~dataplat.sysapi.dbio.base.Transaction` is open are recorded in an undo log so that
they can be rolled back together.

-----------------------
Backend Implementations
-----------------------

:py:class:`~dataplat.sysapi.dbio.mongo.MongoDBClientFactory`
    stores all collections in a MongoDB database, given by the ``db_url`` configuration parameter.

:py:class:`~dataplat.sysapi.dbio.inmem.InMemoryDBClientFactory`
    holds the data in memory for the lifetime of the factory; intended for unit tests.

:py:class:`~dataplat.sysapi.dbio.fsbased.FSBasedDBClientFactory`
    persists each record as a JSON file below the ``db_root_dir`` directory.

:py:func:`create_dbclient_factory` selects one of these according to the ``factory``
configuration parameter.
"""
from collections.abc import Mapping

from dataplat.base.config import ConfigurationException
from .base    import *
from .mongo   import MongoDBClientFactory
from .inmem   import InMemoryDBClientFactory
from .fsbased import FSBasedDBClientFactory

_factories = {
    "mongo":   MongoDBClientFactory,
    "inmem":   InMemoryDBClientFactory,
    "fsbased": FSBasedDBClientFactory
}

def create_dbclient_factory(config: Mapping) -> DBClientFactory:
    """
    create the DBClientFactory selected by the ``factory`` parameter (one of ``mongo``, ``inmem``,
    or ``fsbased``; default: ``inmem``) in the given dbio configuration.
    """
    ftype = config.get("factory", "inmem")
    if ftype not in _factories:
        raise ConfigurationException("dbio.factory: unsupported factory type: "+str(ftype))
    return _factories[ftype](config)
