import os, json, pdb, logging, tempfile
import unittest as test

from dataplat.sysapi.package import importers
from dataplat.sysapi.package.manifest import ServiceDefinition
from dataplat.sysapi import records, dbio
from dataplat.sysapi.dispatch import ServiceDispatcher, DispatchFailure, FailureKind
from dataplat.sysapi.exceptions import InternalError

class TestServicesImporter(test.TestCase):

    def setUp(self):
        self.cli = dbio.InMemoryDBClientFactory({}).create_client("acme")
        self.services = records.ServiceStore(self.cli)
        self.imp = importers.ServicesImporter(self.services)

    def test_run(self):
        n = self.imp.run([ServiceDefinition("db", "sql_db"),
                          { "name": "files", "type": "local_file", "config": { "root_dir": "/tmp" } }])
        self.assertEqual(n, 2)
        self.assertEqual(self.services.find_by_name("db")['type'], "sql_db")
        self.assertEqual(self.services.find_by_name("files")['config'], { "root_dir": "/tmp" })
        self.assertEqual(self.imp.run(None), 0)
        self.assertEqual(self.imp.run([]), 0)

    def test_duplicate(self):
        self.imp.run([ServiceDefinition("db", "sql_db")])
        with self.assertRaises(InternalError) as cm:
            self.imp.run([ServiceDefinition("db", "sql_db")])
        self.assertTrue(cm.exception.message.startswith("Could not create the services.\n"))

class TestDispatchingImporters(test.TestCase):

    def setUp(self):
        self.cli = dbio.InMemoryDBClientFactory({}).create_client("acme")
        self.services = records.ServiceStore(self.cli)
        self.services.create({ "name": "db", "type": "sql_db" })
        self.dispatcher = ServiceDispatcher(self.services, {})
        self.schema = importers.SchemaImporter(self.dispatcher)
        self.data = importers.DataImporter(self.dispatcher)

    def test_schema(self):
        n = self.schema.run({ "db": [{ "name": "todo" }, { "name": "done" }], "other": [] })
        self.assertEqual(n, 2)
        db = self.dispatcher.get_service("db")
        self.assertEqual([t['name'] for t in db.get_tables()], ["todo", "done"])
        self.assertEqual(self.schema.run(None), 0)

    def test_schema_already_exists_skipped(self):
        self.schema.run({ "db": [{ "name": "todo" }] })
        with self.assertLogs(self.schema.log, "WARNING") as cm:
            n = self.schema.run({ "db": [{ "name": "todo" }] })
        self.assertEqual(n, 1)
        self.assertIn("ALREADY_EXISTS", cm.output[0])

    def test_schema_missing_service(self):
        with self.assertRaises(DispatchFailure) as cm:
            self.schema.run({ "db1": [{ "name": "todo" }] })
        self.assertIs(cm.exception.kind, FailureKind.NOT_FOUND)

    def test_data(self):
        self.schema.run({ "db": [{ "name": "todo" }] })
        n = self.data.run({ "db": { "todo": [{ "task": "eat" }, { "task": "sleep" }] } })
        self.assertEqual(n, 2)
        self.assertEqual(self.dispatcher.get_service("db").get_rows("todo"),
                         [{ "task": "eat" }, { "task": "sleep" }])
        self.assertEqual(self.data.run({}), 0)

    def test_data_failures(self):
        self.schema.run({ "db": [{ "name": "todo" }] })
        with self.assertRaises(DispatchFailure) as cm:
            self.data.run({ "db": { "notes": [{ "task": "eat" }] } })
        self.assertIs(cm.exception.kind, FailureKind.NOT_FOUND)

        with self.assertLogs(self.data.log, "WARNING"):
            self.data.run({ "db": { "todo": ["eat"] } })
        self.assertEqual(self.dispatcher.get_service("db").get_rows("todo"), [])

    def test_wrapper(self):
        dispatcher = ServiceDispatcher(self.services, { "resource_wrapper": "items" })
        imp = importers.SchemaImporter(dispatcher, "items")
        self.assertEqual(imp.run({ "db": [{ "name": "todo" }] }), 1)
        self.assertTrue(dispatcher.get_service("db").table_exists("todo"))

    def test_fatal_kinds(self):
        self.assertIn(FailureKind.NOT_FOUND, importers.FATAL_FAILURES)
        self.assertIn(FailureKind.INTERNAL_ERROR, importers.FATAL_FAILURES)
        self.assertNotIn(FailureKind.ALREADY_EXISTS, importers.FATAL_FAILURES)
        self.assertNotIn(FailureKind.BAD_REQUEST, importers.FATAL_FAILURES)


if __name__ == '__main__':
    test.main()
