import os, json, pdb, logging, tempfile, zipfile
import unittest as test
from unittest.mock import patch, Mock
from pathlib import Path

from dataplat.sysapi.package import packager as pkgr
from dataplat.sysapi.package.manifest import AppDescriptor
from dataplat.sysapi.service import SystemService
from dataplat.sysapi.dispatch import DispatchFailure, FailureKind
from dataplat.sysapi.exceptions import BadRequest, NotFound, InternalError, FormatError
from dataplat.sysapi import dbio

tmpdir = tempfile.TemporaryDirectory(prefix="_test_packager.")
loghdlr = None
rootlog = None

def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name, "test_packager.log"))
    loghdlr.setLevel(logging.DEBUG)
    rootlog.addHandler(loghdlr)

def tearDownModule():
    global loghdlr
    if loghdlr:
        if rootlog:
            rootlog.removeHandler(loghdlr)
        loghdlr.flush()
        loghdlr.close()
        loghdlr = None
    tmpdir.cleanup()

DISPLAY_FIELDS = ["name", "description", "type", "path", "url", "requires_fullscreen",
                  "allow_fullscreen_toggle", "toggle_location"]

class TestPackager(test.TestCase):

    def setUp(self):
        self.workdir = tempfile.mkdtemp(dir=tmpdir.name)
        self.storage = os.path.join(self.workdir, "storage")
        self.tmp = os.path.join(self.workdir, "tmp")
        os.mkdir(self.tmp)
        self.cfg = { "storage_root_dir": self.storage, "tmp_dir": self.tmp }
        self.fact = dbio.InMemoryDBClientFactory({})
        self.svc = SystemService(self.fact, self.cfg, "acme")
        self.svc.services.create({ "name": "db", "type": "sql_db" })
        self.svc.services.create({ "name": "files", "type": "local_file" })
        self.pkgr = self.svc.packager

    def make_package(self, name, entries):
        path = os.path.join(self.workdir, name)
        with zipfile.ZipFile(path, 'w') as zf:
            for ename, data in entries.items():
                if not isinstance(data, str):
                    data = json.dumps(data)
                zf.writestr(ename, data)
        return path

    def assertNoImportResidue(self, apps=0):
        self.assertEqual(self.svc.apps.count(), apps)
        self.assertEqual(list(self.svc.dbcli.select(dbio.TABLE_COLL)), [])
        self.assertEqual(list(self.svc.dbcli.select(dbio.ROW_COLL)), [])

    def test_ctor(self):
        self.assertIs(self.pkgr.dbcli, self.svc.dbcli)
        self.assertEqual(self.pkgr.wrapper, "resource")
        self.assertEqual(self.pkgr.tmpdir, self.tmp)
        self.assertIs(self.pkgr.state, pkgr.PackageState.IDLE)

    def test_import_descriptor_only(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "description": "an app", "url": "https://acme.com/" }
        })
        app = self.pkgr.import_from_file(pkg, { "description": "overridden" })

        self.assertEqual(app['id'], 1)
        self.assertEqual(app['tenant'], "acme")
        expected = AppDescriptor("acme", description="overridden", url="https://acme.com/")
        for prop, val in expected.to_dict().items():
            self.assertEqual(app[prop], val, prop)
        self.assertEqual(self.svc.apps.get(1)['description'], "overridden")

        self.assertNoImportResidue(1)
        self.assertEqual(self.svc.services.count(), 2)
        self.assertFalse(os.path.exists(self.storage))
        self.assertTrue(os.path.exists(pkg))
        self.assertIs(self.pkgr.state, pkgr.PackageState.COMMITTED)

    def test_import_defaults(self):
        pkg = self.make_package("acme.dfpkg", { "app.json": { "name": "acme", "type": "storage" } })
        app = self.pkgr.import_from_file(pkg)
        self.assertEqual(app['name'], "acme")
        self.assertEqual(app['type'], "storage")
        self.assertIs(app['is_active'], False)
        self.assertIsNone(app['description'])
        self.assertIs(app['requires_fullscreen'], False)
        self.assertIs(app['allow_fullscreen_toggle'], True)
        self.assertEqual(app['toggle_location'], "top")
        self.assertIsNone(app['storage_service_id'])
        self.assertIsNone(app['storage_container'])

    def test_import_no_descriptor(self):
        pkg = self.make_package("acme.dfpkg", { "index.html": "<html/>" })
        with self.assertRaises(BadRequest) as cm:
            self.pkgr.import_from_file(pkg)
        self.assertEqual(cm.exception.message, "No application description file in this package file.")
        self.assertNoImportResidue()
        self.assertFalse(os.path.exists(self.storage))

    def test_import_empty_schema(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme" },
            "schema.json": { "service": [] }
        })
        with self.assertRaises(BadRequest):
            self.pkgr.import_from_file(pkg)
        self.assertNoImportResidue()
        self.assertIs(self.pkgr.state, pkgr.PackageState.ROLLED_BACK)

    def test_import_full(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "type": "storage" },
            "services.json": [{ "name": "db2", "type": "sql_db" }],
            "schema.json": { "service": [{ "name": "db2", "table": [{ "name": "todo" }] }] },
            "data.json": { "service": [{ "name": "db2", "table": [
                { "name": "todo", "record": [{ "task": "eat" }, { "task": "sleep" }] }
            ]}]},
            "index.html": "<html/>",
            "js/app.js": "go();"
        })
        app = self.pkgr.import_from_file(pkg)

        self.assertEqual(app['name'], "acme")
        self.assertEqual(self.svc.services.find_by_name("db2")['type'], "sql_db")
        db2 = self.svc.dispatcher.get_service("db2")
        self.assertEqual(db2.get_rows("todo"), [{ "task": "eat" }, { "task": "sleep" }])
        appdir = Path(self.storage, "files", "applications", "acme")
        self.assertEqual((appdir / "index.html").read_text(), "<html/>")
        self.assertEqual((appdir / "js" / "app.js").read_text(), "go();")
        self.assertFalse((appdir / "description.json").exists())
        self.assertFalse((appdir / "data.json").exists())

    def test_import_into_container(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "type": "storage" },
            "acme/index.html": "<html/>"
        })
        self.pkgr.import_from_file(pkg, { "storage_container": "" })
        self.assertTrue(Path(self.storage, "files", "acme", "index.html").is_file())

    def test_import_data_failure_rolls_back(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme" },
            "services.json": [{ "name": "db2", "type": "sql_db" }],
            "schema.json": { "service": [{ "name": "db2", "table": [{ "name": "todo" }] }] },
            "data.json": { "service": [{ "name": "db2", "table": [
                { "name": "todo", "record": [{ "task": "eat" }] },
                { "name": "notes", "record": [{ "note": "hey" }] }
            ]}]}
        })
        with self.assertRaises(DispatchFailure) as cm:
            self.pkgr.import_from_file(pkg)
        self.assertIs(cm.exception.kind, FailureKind.NOT_FOUND)
        self.assertIs(self.pkgr.state, pkgr.PackageState.ROLLED_BACK)
        self.assertFalse(self.svc.dbcli.in_transaction)

        self.assertNoImportResidue()
        self.assertIsNone(self.svc.services.find_by_name("db2"))
        self.assertEqual(self.svc.services.count(), 2)

        # identifiers consumed by the failed import are not reused
        pkg = self.make_package("acme.dfpkg", { "description.json": { "name": "acme" } })
        self.assertEqual(self.pkgr.import_from_file(pkg)['id'], 2)

    def test_import_schema_missing_service(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme" },
            "schema.json": { "service": [{ "name": "db1", "table": [{ "name": "todo" }] }] }
        })
        with self.assertRaises(DispatchFailure) as cm:
            self.pkgr.import_from_file(pkg)
        self.assertIs(cm.exception.kind, FailureKind.NOT_FOUND)
        self.assertNoImportResidue()

    def test_import_existing_table_tolerated(self):
        self.svc.dispatcher.dispatch("POST", "db", "_schema", payload=[{ "name": "todo" }])
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme" },
            "schema.json": { "service": [{ "name": "db", "table": [{ "name": "todo" }] }] },
            "data.json": { "service": [{ "name": "db", "table": [
                { "name": "todo", "record": [{ "task": "eat" }] }
            ]}]}
        })
        app = self.pkgr.import_from_file(pkg)
        self.assertEqual(app['name'], "acme")
        self.assertEqual(self.svc.dispatcher.get_service("db").get_rows("todo"), [{ "task": "eat" }])
        self.assertIs(self.pkgr.state, pkgr.PackageState.COMMITTED)

    def test_import_duplicate_app(self):
        pkg = self.make_package("acme.dfpkg", { "description.json": { "name": "acme" } })
        self.pkgr.import_from_file(pkg)

        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme" },
            "services.json": [{ "name": "db2", "type": "sql_db" }]
        })
        with self.assertRaises(InternalError) as cm:
            self.pkgr.import_from_file(pkg)
        self.assertTrue(cm.exception.message.startswith("Could not create the application.\n"))
        self.assertIsNone(self.svc.services.find_by_name("db2"))
        self.assertEqual(self.svc.apps.count(), 1)

    def test_import_file_failure(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "type": "storage", "storage_service_id": 9 },
            "schema.json": { "service": [{ "name": "db", "table": [{ "name": "todo" }] }] },
            "index.html": "<html/>"
        })
        with self.assertRaises(InternalError) as cm:
            self.pkgr.import_from_file(pkg)
        self.assertIn("unknown storage service with id '9'", cm.exception.message)
        self.assertNoImportResidue()
        self.assertIs(self.pkgr.state, pkgr.PackageState.ROLLED_BACK)

    def test_import_unconfigured_storage(self):
        # the default storage service has neither root_dir nor storage_root_dir
        del self.cfg["storage_root_dir"]
        svc = SystemService(dbio.InMemoryDBClientFactory({}), self.cfg, "acme")
        svc.services.create({ "name": "files", "type": "local_file" })
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "type": "storage" },
            "index.html": "<html/>"
        })
        with self.assertRaises(InternalError) as cm:
            svc.packager.import_from_file(pkg)
        self.assertIn("unknown storage service with id '1'", cm.exception.message)
        self.assertEqual(svc.apps.count(), 0)
        self.assertFalse(svc.dbcli.in_transaction)
        self.assertIs(svc.packager.state, pkgr.PackageState.ROLLED_BACK)

    def test_import_interrupted(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "type": "storage" },
            "services.json": [{ "name": "db2", "type": "sql_db" }],
            "index.html": "<html/>"
        })
        with patch.object(self.pkgr.materializer, "import_files", side_effect=KeyboardInterrupt):
            with self.assertRaises(KeyboardInterrupt):
                self.pkgr.import_from_file(pkg)
        self.assertFalse(self.svc.dbcli.in_transaction)
        self.assertIsNone(self.svc.services.find_by_name("db2"))
        self.assertNoImportResidue()
        self.assertIs(self.pkgr.state, pkgr.PackageState.ROLLED_BACK)

        # the client is usable for a later import
        pkg = self.make_package("acme.dfpkg", { "description.json": { "name": "acme" } })
        app = self.pkgr.import_from_file(pkg)
        self.assertEqual(app['name'], "acme")
        self.assertEqual(self.svc.apps.count(), 1)

    def test_import_upload(self):
        pkg = self.make_package("upload_1234", { "description.json": { "name": "acme" } })
        app = self.pkgr.import_upload([pkgr.PackageUpload("acme.dfpkg", pkg)], { "name": "widgets" })
        self.assertEqual(app['name'], "widgets")
        self.assertFalse(os.path.exists(pkg))

        pkg = self.make_package("upload_5678", { "description.json": { "name": "acme" } })
        app = self.pkgr.import_upload(pkgr.PackageUpload("acme.dfpkg", pkg, owned=False))
        self.assertEqual(app['name'], "acme")
        self.assertTrue(os.path.exists(pkg))

    def test_import_upload_failures(self):
        pkg = self.make_package("upload_1234", { "description.json": { "name": "acme" } })
        upload = pkgr.PackageUpload("acme.dfpkg", pkg)
        with self.assertRaises(BadRequest) as cm:
            self.pkgr.import_upload([upload, upload])
        self.assertEqual(cm.exception.message,
                         "Only a single application package file is allowed for import.")
        with self.assertRaises(BadRequest):
            self.pkgr.import_upload([])

        with self.assertRaises(InternalError) as cm:
            self.pkgr.import_upload(pkgr.PackageUpload("acme.dfpkg", None, "connection reset"))
        self.assertIn("connection reset", cm.exception.message)

        with self.assertRaises(FormatError):
            self.pkgr.import_upload(pkgr.PackageUpload("acme.zip", pkg))
        self.assertFalse(os.path.exists(pkg))
        self.assertEqual(self.svc.apps.count(), 0)

    @patch('dataplat.sysapi.package.archive.requests.get')
    def test_import_from_url(self, mock_get):
        pkg = self.make_package("acme.dfpkg", { "description.json": { "name": "acme" } })
        with open(pkg, 'rb') as fd:
            content = fd.read()
        resp = Mock()
        resp.iter_content.return_value = [content]
        mock_get.return_value = resp

        app = self.pkgr.import_from_url("https://example.com/acme.dfpkg", { "is_active": True })
        self.assertEqual(app['name'], "acme")
        self.assertIs(app['is_active'], True)
        self.assertEqual(mock_get.call_args[1]['timeout'], 60)
        self.assertEqual(os.listdir(self.tmp), [])

    def test_export(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "description": "an app", "type": "storage" },
            "schema.json": { "service": [{ "name": "db", "table": [{ "name": "todo" },
                                                                   { "name": "notes" }] }] },
            "data.json": { "service": [{ "name": "db", "table": [
                { "name": "todo", "record": [{ "task": "eat" }] }
            ]}]},
            "index.html": "<html/>"
        })
        app = self.pkgr.import_from_file(pkg)

        with self.pkgr.exported(app['id']) as out:
            self.assertEqual(out.filename, "acme.dfpkg")
            self.assertTrue(out.path.startswith(self.tmp))
            with zipfile.ZipFile(out.path) as zf:
                self.assertEqual(zf.namelist(), ["description.json", "index.html"])
                desc = json.loads(zf.read("description.json"))
            self.assertTrue(out.read().startswith(b"PK"))
        self.assertFalse(os.path.exists(out.path))
        self.assertEqual(os.listdir(self.tmp), [])
        self.assertEqual(list(desc.keys()), list(AppDescriptor.EXPORT_FIELDS))
        self.assertEqual(desc['description'], "an app")

        self.pkgr.set_export_items(["db"], { "db": ["todo"] })
        with self.pkgr.exported(app['id'], include_files=False, include_data=True) as out:
            with zipfile.ZipFile(out.path) as zf:
                self.assertEqual(zf.namelist(), ["description.json", "services.json",
                                                 "schema.json", "data.json"])
                self.assertEqual(json.loads(zf.read("schema.json")),
                                 { "service": [{ "name": "db", "table": [{ "name": "todo" }] }] })
                self.assertEqual(json.loads(zf.read("data.json"))['service'][0]['table'],
                                 [{ "name": "todo", "record": [{ "task": "eat" }] }])
                self.assertEqual(json.loads(zf.read("services.json"))[0]['name'], "db")

        self.pkgr.set_export_items(schemas={ "db": [] })
        with self.pkgr.exported(app['id'], include_files=False) as out:
            with zipfile.ZipFile(out.path) as zf:
                self.assertEqual(zf.namelist(), ["description.json", "schema.json"])
                tables = json.loads(zf.read("schema.json"))['service'][0]['table']
        self.assertEqual([t['name'] for t in tables], ["todo", "notes"])

    def test_export_failures(self):
        with self.assertRaises(NotFound) as cm:
            self.pkgr.exported(9)
        self.assertEqual(cm.exception.message, "App not found in database with app id - 9")

        app = self.svc.apps.create({ "name": "acme" })
        self.pkgr.set_export_items(["db9"])
        with self.assertRaises(NotFound):
            self.pkgr.exported(app['id'])
        self.pkgr.set_export_items(schemas={ "db9": [] })
        with self.assertRaises(DispatchFailure):
            self.pkgr.exported(app['id'])
        self.assertEqual(os.listdir(self.tmp), [])

    def test_export_non_storage_app(self):
        appdir = Path(self.storage, "files", "applications", "acme")
        os.makedirs(appdir)
        (appdir / "index.html").write_text("<html/>")
        app = self.svc.apps.create(AppDescriptor("acme", type="url", url="https://acme.com/").to_dict())

        with patch.object(self.pkgr.materializer, 'export_files') as mock_export:
            with self.pkgr.exported(app['id'], include_files=True) as out:
                with zipfile.ZipFile(out.path) as zf:
                    self.assertEqual(zf.namelist(), ["description.json"])
            self.assertFalse(mock_export.called)

    def test_export_to(self):
        app = self.svc.apps.create(AppDescriptor("acme").to_dict())
        outdir = os.path.join(self.workdir, "out")
        os.mkdir(outdir)
        path = self.pkgr.export_to(app['id'], outdir)
        self.assertEqual(path, os.path.join(outdir, "acme.dfpkg"))
        self.assertTrue(os.path.isfile(path))

        path = self.pkgr.export_to(app['id'], os.path.join(outdir, "copy.dfpkg"))
        self.assertTrue(path.endswith("copy.dfpkg"))
        self.assertTrue(os.path.isfile(path))
        self.assertEqual(os.listdir(self.tmp), [])

    def test_export_import_round_trip(self):
        pkg = self.make_package("acme.dfpkg", {
            "description.json": { "name": "acme", "description": "an app", "type": "storage",
                                  "path": "/acme", "url": "https://acme.com/",
                                  "requires_fullscreen": True, "allow_fullscreen_toggle": False,
                                  "toggle_location": "bottom" },
            "index.html": "<html/>",
            "js/app.js": "go();"
        })
        orig = self.pkgr.import_from_file(pkg)
        outdir = os.path.join(self.workdir, "out")
        os.mkdir(outdir)
        exported = self.pkgr.export_to(orig['id'], outdir)

        storage = os.path.join(self.workdir, "storage2")
        other = SystemService(dbio.InMemoryDBClientFactory({}),
                              { "storage_root_dir": storage, "tmp_dir": self.tmp }, "widgets")
        other.services.create({ "name": "files", "type": "local_file" })
        app = other.packager.import_from_file(exported)

        for prop in DISPLAY_FIELDS:
            self.assertEqual(app[prop], orig[prop], prop)
        appdir = Path(storage, "files", "applications", "acme")
        self.assertEqual((appdir / "index.html").read_text(), "<html/>")
        self.assertEqual((appdir / "js" / "app.js").read_text(), "go();")


if __name__ == '__main__':
    test.main()
