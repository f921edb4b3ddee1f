"""
The database service type (``sql_db``).

A :py:class:`DatabaseService` manages a set of tables, each described by a table definition (an
object with at least a ``name``), and the rows stored in them.  It provides the following resources:

``_schema``
    ``GET`` returns all table definitions; ``POST`` creates a batch of tables.
``_schema/{table}``
    ``GET`` returns the definition of one table.
``_table/{table}``
    ``GET`` returns the rows of a table; ``POST`` inserts a batch of rows.

Request and response bodies wrap their lists under the configured ``resource_wrapper`` property
(default: ``resource``).  The tables and rows are persisted through the tenant's
:py:class:`~dataplat.sysapi.dbio.DBClient`, so they take part in any transaction in progress on it.
"""
from collections.abc import Mapping
from logging import Logger
from typing import List

from . import dbio
from .dispatch import PlatformService, DispatchFailure, FailureKind

__all__ = ["DatabaseService", "DEF_RESOURCE_WRAPPER"]

DEF_RESOURCE_WRAPPER = "resource"

class DatabaseService(PlatformService):
    """
    a service providing tables of records
    """
    TYPE = "sql_db"

    def __init__(self, record: Mapping, dbclient: dbio.DBClient, config: Mapping=None,
                 log: Logger=None):
        super(DatabaseService, self).__init__(record, dbclient, config, log)
        self.wrapper = self.cfg.get('resource_wrapper', DEF_RESOURCE_WRAPPER)

    def _table_id(self, name):
        return "%s:%s" % (self.id, name)

    def _unwrap(self, payload, what: str) -> List:
        if isinstance(payload, Mapping) and self.wrapper in payload:
            payload = payload[self.wrapper]
        if not isinstance(payload, list):
            raise DispatchFailure(FailureKind.BAD_REQUEST,
                                  "%s: %s must be provided as a list" % (self.name, what))
        return payload

    def handle_request(self, verb: str, resource: str, options: Mapping=None, payload=None):
        path = resource.strip('/').split('/', 1)
        if path[0] == "_schema":
            if verb == "GET":
                if len(path) > 1:
                    return self.get_table(path[1])
                return { self.wrapper: self.get_tables((options or {}).get('names')) }
            if verb == "POST" and len(path) == 1:
                tables = payload
                if isinstance(tables, Mapping) and self.wrapper not in tables:
                    tables = [tables]
                return { self.wrapper: self.create_tables(self._unwrap(tables, "table definitions")) }

        elif path[0] == "_table" and len(path) > 1:
            if verb == "GET":
                return { self.wrapper: self.get_rows(path[1]) }
            if verb == "POST":
                return { self.wrapper: self.insert_rows(path[1],
                                                        self._unwrap(payload, "table records")) }

        else:
            raise DispatchFailure(FailureKind.NOT_FOUND,
                                  "%s: resource not found: %s" % (self.name, resource))

        raise DispatchFailure(FailureKind.BAD_REQUEST,
                              "%s: %s not supported on resource %s" % (self.name, verb, resource))

    def table_exists(self, name: str) -> bool:
        return self.dbcli.exists(dbio.TABLE_COLL, self._table_id(name))

    def get_table(self, name: str) -> Mapping:
        """
        return the definition of the named table
        :raises DispatchFailure:  (NOT_FOUND) if the table does not exist
        """
        rec = self.dbcli.get(dbio.TABLE_COLL, self._table_id(name))
        if rec is None:
            raise DispatchFailure(FailureKind.NOT_FOUND,
                                  "Table '%s' does not exist in database %s." % (name, self.name))
        return rec['definition']

    def get_tables(self, names: List[str]=None) -> List[Mapping]:
        """
        return the definitions of the service's tables in the order they were created
        :param list names:  if given, return only the tables with these names
        """
        recs = sorted(self.dbcli.select(dbio.TABLE_COLL, service_id=self.id),
                      key=lambda r: r['seq'])
        if names:
            recs = [r for r in recs if r['name'] in names]
        return [r['definition'] for r in recs]

    def create_tables(self, tables: List[Mapping]) -> List[Mapping]:
        """
        create a batch of tables.  Either all of the tables are created or none are.
        :param list tables:  the table definitions; each must be an object with a ``name``
        :return:  a list of objects giving the names of the created tables
        :raises DispatchFailure:  (BAD_REQUEST) if a definition is malformed, or (ALREADY_EXISTS) if
                                  any of the named tables already exists
        """
        names = []
        for tbl in tables:
            if not isinstance(tbl, Mapping) or not isinstance(tbl.get('name'), str) or \
               not tbl['name'].strip():
                raise DispatchFailure(FailureKind.BAD_REQUEST,
                                      "%s: table definition is missing a name" % self.name)
            if tbl['name'] in names:
                raise DispatchFailure(FailureKind.BAD_REQUEST,
                                      "%s: table defined more than once: %s" % (self.name, tbl['name']))
            names.append(tbl['name'])

        existing = [n for n in names if self.table_exists(n)]
        if existing:
            raise DispatchFailure(FailureKind.ALREADY_EXISTS,
                                  "%s: table(s) already exist: %s" % (self.name, ", ".join(existing)))

        for tbl in tables:
            self.dbcli.insert(dbio.TABLE_COLL, {
                "id": self._table_id(tbl['name']),
                "seq": self.dbcli.next_id(dbio.TABLE_COLL),
                "service_id": self.id,
                "name": tbl['name'],
                "definition": dict(tbl)
            })
        self.log.info("%s: created %d table(s)", self.name, len(names))
        return [{"name": n} for n in names]

    def get_rows(self, table: str) -> List[Mapping]:
        """
        return the rows stored in the given table in the order they were inserted
        :raises DispatchFailure:  (NOT_FOUND) if the table does not exist
        """
        if not self.table_exists(table):
            raise DispatchFailure(FailureKind.NOT_FOUND,
                                  "Table '%s' does not exist in database %s." % (table, self.name))
        recs = self.dbcli.select(dbio.ROW_COLL, table_id=self._table_id(table))
        return [r['data'] for r in sorted(recs, key=lambda r: r['seq'])]

    def insert_rows(self, table: str, rows: List[Mapping]) -> List[Mapping]:
        """
        add rows to a table
        :return:  a list of objects giving the identifiers assigned to the new rows
        :raises DispatchFailure:  (NOT_FOUND) if the table does not exist, or (BAD_REQUEST) if a
                                  row is not an object
        """
        if not self.table_exists(table):
            raise DispatchFailure(FailureKind.NOT_FOUND,
                                  "Table '%s' does not exist in database %s." % (table, self.name))
        if any(not isinstance(r, Mapping) for r in rows):
            raise DispatchFailure(FailureKind.BAD_REQUEST,
                                  "%s: %s: table records must be objects" % (self.name, table))

        tblid = self._table_id(table)
        out = []
        for row in rows:
            seq = self.dbcli.next_id(dbio.ROW_COLL)
            rowid = "%s#%d" % (tblid, seq)
            self.dbcli.insert(dbio.ROW_COLL, {
                "id": rowid,
                "seq": seq,
                "table_id": tblid,
                "data": dict(row)
            })
            out.append({"id": rowid})
        self.log.debug("%s: inserted %d row(s) into %s", self.name, len(out), table)
        return out
