"""
An implementation of the dbio interface that uses a MongoDB database as it backend store
"""
import re
from copy import deepcopy
from collections.abc import Mapping, MutableMapping
from typing import Iterator
from . import base

from pymongo import MongoClient

from dataplat.base.config import ConfigurationException, merge_config

_dburl_re = re.compile(r"^mongodb://(\w+(:\S+)?@)?\w+(\.\w+)*(:\d+)?/\w+(\?\w.*)?$")

class MongoDBClient(base.DBClient):
    """
    an implementation of DBClient using a MongoDB database as the backend store.
    """

    def __init__(self, dburl: str, config: Mapping, tenant: str = base.DEF_TENANT):
        """
        create the client with its connector to the MongoDB database

        :param str   dburl:  the URL of MongoDB database in the form, 'mongodb://USER:PW@HOST:PORT/DBNAME'
        :param dict config:  the configuration for the DBClient
        :param str  tenant:  the tenant whose records will be accessed
        """
        if not _dburl_re.match(dburl):
            raise ValueError("DBClient: Bad dburl format (need 'mongodb://[USER:PASS@]HOST[:PORT]/DBNAME'): "+
                             dburl)
        self._dburl = dburl
        self._mngocli = None
        super(MongoDBClient, self).__init__(config, tenant, None)

    def connect(self):
        """
        establish a connection to the database.  This will set the native property to the pymongo
        database object.
        """
        self._mngocli = MongoClient(self._dburl)
        self._native = self._mngocli.get_database()

    def disconnect(self):
        """
        close the connection to the database.
        """
        if self._mngocli:
            try:
                self._mngocli.close()
            finally:
                self._mngocli = None
                self._native = None

    @property
    def native(self):
        """
        the native pymongo database object that contains the collections.  Accessing this property
        will implicitly connect this client to the underlying MongoDB database.
        """
        if self._native is None:
            self.connect()
        return self._native

    def _upsert(self, collname: str, recdata: Mapping) -> bool:
        try:
            id = recdata['id']
        except KeyError as ex:
            raise base.DBIOException("_upsert(): record is missing required 'id' property")
        key = {"id": id}

        try:
            coll = self.native[collname]
            result = coll.replace_one(key, dict(recdata), upsert=True)
            return result.matched_count == 0

        except base.DBIOException as ex:
            raise
        except Exception as ex:
            raise base.DBIOException("Failed to save record with id=%s: %s" % (id, str(ex)), cause=ex)

    def _next_recnum(self, slot):
        key = {"slot": slot}

        try:
            coll = self.native[base.NEXTNUM_COLL]

            if coll.count_documents(key) == 0:
                coll.insert_one({
                    "slot": slot,
                    "next": 1
                })

            # returns the document as it was before the increment
            result = coll.find_one_and_update(key, {"$inc": {"next": 1}})
            return result["next"]

        except base.DBIOException as ex:
            raise
        except Exception as ex:
            raise base.DBIOException("Failed to access named sequence, =%s: %s" % (slot, str(ex)),
                                     cause=ex)

    def _get_from_coll(self, collname, id) -> MutableMapping:
        key = {"id": id}

        try:
            coll = self.native[collname]
            return coll.find_one(key, {'_id': False})

        except Exception as ex:
            raise base.DBIOException("Failed to access record with id=%s: %s" % (id, str(ex)), cause=ex)

    def _select_from_coll(self, collname, **constraints) -> Iterator[MutableMapping]:
        try:
            coll = self.native[collname]
            for rec in coll.find(constraints, {'_id': False}):
                yield rec

        except Exception as ex:
            raise base.DBIOException("Failed while selecting records: " + str(ex), cause=ex)

    def _delete_from(self, collname, id):
        key = {"id": id}
        try:
            coll = self.native[collname]
            results = coll.delete_one(key)
            return results.deleted_count > 0

        except Exception as ex:
            raise base.DBIOException("Failed while deleting record with id=%s: %s" % (id, str(ex)),
                                     cause=ex)


class MongoDBClientFactory(base.DBClientFactory):
    """
    a DBClientFactory that creates MongoDBClient instances in which records are stored in a MongoDB
    database.

    This implementation supports the following configuration parameter:

    ``db_url``
        the URL for the MongoDB connection, of the form,
        ``mongodb://``*[USER*``:``*PASS*``@``*]HOST[*``:``*PORT]*``/``*DBNAME*
    """

    def __init__(self, config: Mapping, dburl: str = None):
        """
        Create the factory with the given configuration.

        :param dict config:  the configuration parameters used to configure clients
        :param str   dburl:  the URL for the MongoDB connection; it takes the same form as the
                             ``db_url`` configuration parameter.  If not provided, the value of the
                             ``db_url`` configuration parameter will be used.
        :raise ConfigurationException:  if the database's URL is provided neither as an
                             argument nor a configuration parameter.
        :raise ValueError:  if the specified database URL is of an incorrect form
        """
        super(MongoDBClientFactory, self).__init__(config)
        if not dburl:
            dburl = self._cfg.get("db_url")
            if not dburl:
                raise ConfigurationException("Missing required configuration parameter: db_url")
        if not _dburl_re.match(dburl):
            raise ValueError("MongoDBClientFactory: Bad dburl format (need "+
                             "'mongodb://[USER:PASS@]HOST[:PORT]/DBNAME'): "+
                             dburl)
        self._dburl = dburl

    def create_client(self, tenant: str = base.DEF_TENANT, config: Mapping = {}):
        cfg = merge_config(config, deepcopy(self._cfg))
        return MongoDBClient(self._dburl, cfg, tenant)
