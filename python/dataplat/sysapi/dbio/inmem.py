"""
An implementation of the dbio interface based on a simple in-memory look-up.

This is provided primarily for testing purposes
"""
from copy import deepcopy
from collections.abc import Mapping, MutableMapping
from typing import Iterator
from . import base

from dataplat.base.config import merge_config

class InMemoryDBClient(base.DBClient):
    """
    an in-memory DBClient implementation
    """

    def __init__(self, dbdata: Mapping, config: Mapping, tenant: str = base.DEF_TENANT):
        self._db = dbdata
        super(InMemoryDBClient, self).__init__(config, tenant, self._db)

    def _next_recnum(self, slot):
        if slot not in self._db[base.NEXTNUM_COLL]:
            self._db[base.NEXTNUM_COLL][slot] = 0
        self._db[base.NEXTNUM_COLL][slot] += 1
        return self._db[base.NEXTNUM_COLL][slot]

    def _get_from_coll(self, collname, id) -> MutableMapping:
        return deepcopy(self._db.get(collname, {}).get(id))

    def _select_from_coll(self, collname, **constraints) -> Iterator[MutableMapping]:
        for rec in list(self._db.get(collname, {}).values()):
            cancel = False
            for ck, cv in constraints.items():
                if rec.get(ck) != cv:
                    cancel = True
                    break
            if cancel:
                continue
            yield deepcopy(rec)

    def _delete_from(self, collname, id):
        if collname in self._db and id in self._db[collname]:
            del self._db[collname][id]
            return True
        return False

    def _upsert(self, coll: str, recdata: Mapping) -> bool:
        if coll not in self._db:
            self._db[coll] = {}
        exists = recdata['id'] in self._db[coll]
        self._db[coll][recdata['id']] = deepcopy(recdata)
        return not exists


class InMemoryDBClientFactory(base.DBClientFactory):
    """
    a DBClientFactory that creates InMemoryDBClient instances in which records are stored in data
    structures kept in memory.  Records remain in memory for the life of the factory and all the
    clients it creates.
    """

    def __init__(self, config: Mapping, _dbdata = None):
        """
        Create the factory with the given configuration.

        :param dict  config:  the configuration parameters used to configure clients
        :param dict _dbdata:  the initial data for the database.  (Note: internal knowledge of
                              of the in-memory data structure required to use this input.)  If
                              not provided, an empty database is created.
        """
        super(InMemoryDBClientFactory, self).__init__(config)
        self._db = {
            base.APP_COLL: {},
            base.SERVICE_COLL: {},
            base.TABLE_COLL: {},
            base.ROW_COLL: {},
            base.NEXTNUM_COLL: {}
        }
        if _dbdata:
            self._db.update(deepcopy(_dbdata))

    def create_client(self, tenant: str = base.DEF_TENANT, config: Mapping = {}):
        cfg = merge_config(config, deepcopy(self._cfg))
        return InMemoryDBClient(self._db, cfg, tenant)
