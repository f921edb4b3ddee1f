import os, json, pdb, logging, tempfile, zipfile
import unittest as test
from unittest.mock import patch, Mock
from io import BytesIO
from pathlib import Path

from dataplat.sysapi import wsgi, dbio
from dataplat.sysapi.service import SystemService

tmpdir = tempfile.TemporaryDirectory(prefix="_test_wsgi.")
loghdlr = None
rootlog = None

def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name, "test_wsgi.log"))
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

BOUNDARY = "----dataplat-test-boundary"

def make_multipart(fields=None, files=None):
    body = b""
    for name, val in (fields or {}).items():
        body += ("--%s\r\nContent-Disposition: form-data; name=\"%s\"\r\n\r\n%s\r\n" %
                 (BOUNDARY, name, val)).encode('utf-8')
    for name, filename, data in (files or []):
        body += ("--%s\r\nContent-Disposition: form-data; name=\"%s\"; filename=\"%s\"\r\n"
                 "Content-Type: application/octet-stream\r\n\r\n" %
                 (BOUNDARY, name, filename)).encode('utf-8')
        body += data + b"\r\n"
    body += ("--%s--\r\n" % BOUNDARY).encode('utf-8')
    return body

class TestSysAPIApp(test.TestCase):

    def start(self, status, headers=None, extup=None):
        self.resp.append(status)
        for head in headers:
            self.resp.append("{0}: {1}".format(head[0], head[1]))

    def setUp(self):
        self.resp = []
        self.workdir = tempfile.mkdtemp(dir=tmpdir.name)
        self.storage = os.path.join(self.workdir, "storage")
        self.tmp = os.path.join(self.workdir, "tmp")
        os.mkdir(self.tmp)
        self.cfg = { "storage_root_dir": self.storage, "tmp_dir": self.tmp, "default_tenant": "acme" }
        self.fact = dbio.InMemoryDBClientFactory({})
        self.app = wsgi.app(self.cfg, self.fact)

        self.svc = SystemService(self.fact, self.cfg, "acme")
        self.svc.services.create({ "name": "db", "type": "sql_db" })
        self.svc.services.create({ "name": "files", "type": "local_file" })

    def make_package(self, entries):
        buf = BytesIO()
        with zipfile.ZipFile(buf, 'w') as zf:
            for name, data in entries.items():
                if not isinstance(data, str):
                    data = json.dumps(data)
                zf.writestr(name, data)
        return buf.getvalue()

    def request(self, meth, path, query=None, body=None, ctype=None, headers=None):
        env = { 'REQUEST_METHOD': meth, 'PATH_INFO': path }
        if query:
            env['QUERY_STRING'] = query
        if body is not None:
            env['wsgi.input'] = BytesIO(body)
            env['CONTENT_LENGTH'] = str(len(body))
        if ctype:
            env['CONTENT_TYPE'] = ctype
        if headers:
            env.update(headers)
        self.resp = []
        return b"".join(self.app(env, self.start))

    def get_json(self, path, query=None, headers=None):
        return json.loads(self.request("GET", path, query, headers=headers))

    def post_upload(self, pkg, query=None, fields=None, filename="acme.dfpkg"):
        body = make_multipart(fields, [("file", filename, pkg)])
        return self.request("POST", "/app", query, body,
                            "multipart/form-data; boundary=%s" % BOUNDARY)

    def test_about(self):
        out = self.get_json("/")
        self.assertIn("200", self.resp[0])
        self.assertEqual(out, { "resource": [{"name": "app"}, {"name": "service"}] })

    def test_not_found(self):
        self.request("GET", "/goob")
        self.assertIn("404", self.resp[0])
        self.request("GET", "/app/1/files")
        self.assertIn("404", self.resp[0])

    def test_options(self):
        self.request("OPTIONS", "/app")
        self.assertIn("200", self.resp[0])
        self.assertIn("Access-Control-Allow-Methods: GET, POST, OPTIONS", self.resp)
        self.request("OPTIONS", "/app/1")
        self.assertIn("Access-Control-Allow-Methods: GET, OPTIONS", self.resp)

    def test_list_services(self):
        out = self.get_json("/service")
        self.assertEqual([s['name'] for s in out['resource']], ["db", "files"])

        out = self.get_json("/service", "fields=name,type&include_count")
        self.assertEqual(out['resource'], [{ "name": "db", "type": "sql_db" },
                                           { "name": "files", "type": "local_file" }])
        self.assertEqual(out['meta'], { "count": 2 })

        out = self.get_json("/service", "as_list=true")
        self.assertEqual(out['resource'], [1, 2])
        out = self.get_json("/service", "as_list=true&id_field=name&limit=1&offset=1")
        self.assertEqual(out['resource'], ["files"])
        out = self.get_json("/service", "ids=2,5&fields=*")
        self.assertEqual([s['name'] for s in out['resource']], ["files"])

        out = self.get_json("/service", "limit=lots")
        self.assertIn("400", self.resp[0])
        self.assertEqual(out['http:status'], 400)

    def test_tenant(self):
        out = self.get_json("/service", headers={ "HTTP_X_DATAPLAT_TENANT": "widgets" })
        self.assertEqual(out, { "resource": [] })
        out = self.get_json("/service", headers={ "HTTP_X_DATAPLAT_TENANT": "acme" })
        self.assertEqual(len(out['resource']), 2)

    def test_get_record(self):
        out = self.get_json("/service/2")
        self.assertIn("200", self.resp[0])
        self.assertEqual(out['name'], "files")
        out = self.get_json("/service/2", "fields=id,name")
        self.assertEqual(out, { "id": 2, "name": "files" })

        out = self.get_json("/app/5")
        self.assertIn("404", self.resp[0])
        self.assertEqual(out['http:status'], 404)
        self.assertEqual(out['http:reason'], "Not Found")
        self.assertEqual(out['dp:message'], "Record with identifier '5' not found.")

    def test_import_multipart(self):
        pkg = self.make_package({ "description.json": { "name": "acme", "type": "storage" },
                                  "index.html": "<html/>" })
        out = json.loads(self.post_upload(pkg, "name=widgets", { "description": "from the form",
                                                                  "name": "ignored" }))
        self.assertIn("201", self.resp[0])
        self.assertEqual(out['id'], 1)
        self.assertEqual(out['name'], "widgets")
        self.assertEqual(out['description'], "from the form")
        self.assertTrue(Path(self.storage, "files", "applications", "widgets", "index.html").is_file())
        self.assertEqual(os.listdir(self.tmp), [])

        out = self.get_json("/app")
        self.assertEqual([a['name'] for a in out['resource']], ["widgets"])

    def test_import_multipart_undecodable_field(self):
        pkg = self.make_package({ "description.json": { "name": "acme" } })
        body = make_multipart(None, [("file", "acme.dfpkg", pkg)])
        body = ("--%s\r\nContent-Disposition: form-data; name=\"is_active\"\r\n\r\n" %
                BOUNDARY).encode('utf-8') + b"\xff\xfe\r\n" + body
        out = json.loads(self.request("POST", "/app", None, body,
                                      "multipart/form-data; boundary=%s" % BOUNDARY))
        self.assertIn("400", self.resp[0])
        self.assertEqual(out['http:status'], 400)
        self.assertIn("is_active", out['dp:message'])
        self.assertEqual(self.svc.apps.count(), 0)
        self.assertEqual(os.listdir(self.tmp), [])

    def test_import_multipart_bad_package(self):
        pkg = self.make_package({ "index.html": "<html/>" })
        out = json.loads(self.post_upload(pkg))
        self.assertIn("400", self.resp[0])
        self.assertEqual(out['dp:message'], "No application description file in this package file.")
        self.assertEqual(os.listdir(self.tmp), [])

        out = json.loads(self.post_upload(self.make_package({ "description.json": { "name": "acme" } }),
                                          filename="acme.zip"))
        self.assertIn("400", self.resp[0])
        self.assertEqual(out['dp:message'],
                         "Only package files ending with 'dfpkg' are allowed for import.")
        self.assertEqual(self.svc.apps.count(), 0)

    def test_import_missing_service(self):
        pkg = self.make_package({
            "description.json": { "name": "acme" },
            "schema.json": { "service": [{ "name": "db1", "table": [{ "name": "todo" }] }] }
        })
        out = json.loads(self.post_upload(pkg))
        self.assertIn("404", self.resp[0])
        self.assertEqual(out['dp:message'], "Service 'db1' not found.")
        self.assertEqual(self.svc.apps.count(), 0)

    def test_import_zip_body(self):
        pkg = self.make_package({ "description.json": { "name": "acme" } })
        out = json.loads(self.request("POST", "/app", "filename=acme.dfpkg&is_active=true", pkg,
                                      "application/zip"))
        self.assertIn("201", self.resp[0])
        self.assertEqual(out['name'], "acme")
        self.assertIs(out['is_active'], True)
        self.assertEqual(os.listdir(self.tmp), [])

        out = json.loads(self.request("POST", "/app", None, pkg, "application/octet-stream"))
        self.assertIn("400", self.resp[0])
        self.assertIn("filename", out['dp:message'])

    def test_import_bad_override(self):
        pkg = self.make_package({ "description.json": { "name": "acme" } })
        out = json.loads(self.request("POST", "/app", "filename=acme.dfpkg&is_active=sorta", pkg,
                                      "application/zip"))
        self.assertIn("400", self.resp[0])
        self.assertEqual(self.svc.apps.count(), 0)

    @patch('dataplat.sysapi.package.archive.requests.get')
    def test_import_url(self, mock_get):
        resp = Mock()
        resp.iter_content.return_value = [self.make_package({ "description.json": { "name": "acme" } })]
        mock_get.return_value = resp

        body = json.dumps({ "import_url": "https://example.com/acme.dfpkg",
                            "description": "downloaded" }).encode('utf-8')
        out = json.loads(self.request("POST", "/app", None, body, "application/json"))
        self.assertIn("201", self.resp[0])
        self.assertEqual(out['description'], "downloaded")
        self.assertEqual(mock_get.call_args[0][0], "https://example.com/acme.dfpkg")

        out = json.loads(self.request("POST", "/app",
                                      "import_url=https://example.com/acme.dfpkg&name=acme2"))
        self.assertIn("201", self.resp[0])
        self.assertEqual(out['name'], "acme2")
        self.assertEqual(self.svc.apps.count(), 2)

    def test_import_nothing(self):
        out = json.loads(self.request("POST", "/app"))
        self.assertIn("400", self.resp[0])
        self.assertEqual(out['dp:message'], "No application package file or URL provided for import.")

        out = json.loads(self.request("POST", "/app", None, b'{"name": "acme"}', "application/json"))
        self.assertIn("400", self.resp[0])
        out = json.loads(self.request("POST", "/app", None, b'["acme"]', "application/json"))
        self.assertIn("400", self.resp[0])
        out = json.loads(self.request("POST", "/app", None, b'{"name": ', "application/json"))
        self.assertIn("400", self.resp[0])

    def test_post_not_allowed(self):
        self.request("POST", "/service", None, b'{}', "application/json")
        self.assertIn("405", self.resp[0])
        self.request("POST", "/app/1", None, b'{}', "application/json")
        self.assertIn("405", self.resp[0])

    def test_export(self):
        pkg = self.make_package({
            "description.json": { "name": "acme", "type": "storage" },
            "schema.json": { "service": [{ "name": "db", "table": [{ "name": "todo" },
                                                                   { "name": "notes" }] }] },
            "index.html": "<html/>"
        })
        app = json.loads(self.post_upload(pkg))

        body = self.request("GET", "/app/%s" % app['id'], "pkg=true")
        self.assertIn("200", self.resp[0])
        self.assertIn("Content-Type: application/zip", self.resp)
        self.assertIn('Content-Disposition: attachment; filename="acme.dfpkg"', self.resp)
        with zipfile.ZipFile(BytesIO(body)) as zf:
            self.assertEqual(zf.namelist(), ["description.json", "index.html"])
        self.assertEqual(os.listdir(self.tmp), [])

        body = self.request("GET", "/app/%s" % app['id'],
                            "pkg=true&include_files=false&services=db&schemas=db:todo")
        with zipfile.ZipFile(BytesIO(body)) as zf:
            self.assertEqual(zf.namelist(), ["description.json", "services.json", "schema.json"])
            tables = json.loads(zf.read("schema.json"))['service'][0]['table']
        self.assertEqual([t['name'] for t in tables], ["todo"])

        out = json.loads(self.request("GET", "/app/9", "pkg=true"))
        self.assertIn("404", self.resp[0])
        self.assertEqual(out['dp:message'], "App not found in database with app id - 9")


if __name__ == '__main__':
    test.main()
