"""
The REST interface to the system API.

This web service exposes the following resources (relative to the configured base path):

``/app``
    ``GET`` lists the tenant's applications; ``POST`` imports an application package.  A package
    can be sent as a ``multipart/form-data`` file field, as a raw ``application/zip`` (or
    ``application/octet-stream``) body with a ``filename`` query parameter, or referenced by URL
    via the ``import_url`` query parameter.  Other query parameters (``name``, ``description``,
    ``storage_service_id``, ``storage_container``, ...) and the properties of a JSON body override
    the package's application description.
``/app/{id}``
    ``GET`` returns an application record; with ``pkg=true``, the application is exported and
    returned as a package file.  Export options include ``include_files`` (default: true),
    ``include_data``, ``services`` (a comma-separated list of service names), and ``schemas``
    (items of the form ``service:table1+table2``).
``/service``, ``/service/{id}``
    ``GET`` lists the tenant's services or returns one service record.

Listings support the query parameters ``ids``, ``fields``, ``limit``, ``offset``,
``include_count``, ``as_list``, and ``id_field``.  Errors are returned as JSON error messages (see
:py:mod:`dataplat.web.rest.jsonerr`).  The tenant is given by the ``X-DataPlat-Tenant`` request
header.
"""
import os, re, json, logging, tempfile
from collections import OrderedDict
from collections.abc import Mapping
from logging import Logger
from typing import Callable

from werkzeug.formparser import parse_form_data

from dataplat.web.rest import (ServiceApp, WSGIServiceApp, Handler, NotFoundHandler, HandlerWithJSON,
                               FatalError)
from dataplat.web.utils import (get_query_params, query_param_as_bool, query_param_as_list,
                                get_content_type)
from . import dbio, system
from .service import SystemService, SystemServiceFactory
from .records import MAX_RECORDS_RETURNED
from .package import AppDescriptor, FILE_EXTENSION
from .package.packager import PackageUpload
from .exceptions import SysAPIException, BadRequest

__all__ = ["SystemApp", "SysAPIApp", "app"]

_REASONS = {
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    500: "Internal Server Error"
}

_ZIP_TYPES = ("application/zip", "application/x-zip-compressed", "application/octet-stream")

class SystemHandler(HandlerWithJSON):
    """
    a base class for handlers of system API resources.  It translates the exceptions raised by the
    :py:class:`~dataplat.sysapi.service.SystemService` into JSON error responses.
    """

    def __init__(self, service: SystemService, path: str, wsgienv: dict, start_resp: Callable,
                 config: dict={}, log: Logger=None, app=None):
        super(SystemHandler, self).__init__(path, wsgienv, start_resp, service.tenant, config, log, app)
        self.svc = service

    def send_exception(self, ex: SysAPIException, ashead=False):
        """
        report a system API failure as a JSON error response
        """
        code = getattr(ex, 'code', 500) or 500
        if code >= 500:
            self.log.error("%s %s: %s", self._meth, self._path, str(ex))
        else:
            self.log.info("%s %s: client error: %s", self._meth, self._path, str(ex))
        return self.send_error_obj(code, _REASONS.get(code, "Request Failed"), ex.message,
                                   ashead=ashead)

    def _read_body(self) -> bytes:
        bodyin = self._env.get('wsgi.input')
        if bodyin is None:
            raise FatalError(400, "Missing input", "Missing expected request body")
        try:
            size = int(self._env.get('CONTENT_LENGTH') or -1)
        except ValueError:
            raise FatalError(400, "Bad Content-Length", "Unparseable Content-Length header")
        return bodyin.read(size) if size >= 0 else bodyin.read()

    def get_json_body(self):
        """
        read in the request body assuming that it is in JSON format
        """
        body = self._read_body()
        try:
            return json.loads(body, object_pairs_hook=OrderedDict)
        except (ValueError, TypeError) as ex:
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.error("Failed to parse input: %s", str(ex))
                self.log.debug("\n%s", body)
            raise FatalError(400, "Input not parseable as JSON",
                             "Input document is not parse-able as JSON: "+str(ex))

class AboutHandler(SystemHandler):
    """
    a handler that describes the resources available from the system API
    """

    def do_GET(self, path, ashead=False):
        wrapper = self.cfg.get('resource_wrapper', "resource")
        return self.send_json({ wrapper: [ {"name": dbio.APP_COLL}, {"name": dbio.SERVICE_COLL} ] },
                              ashead=ashead)

class RecordHandler(SystemHandler):
    """
    a handler for the ``app`` and ``service`` resources and their individual records
    """

    def __init__(self, service: SystemService, resource: str, id: str, path: str, wsgienv: dict,
                 start_resp: Callable, config: dict={}, log: Logger=None, app=None):
        super(RecordHandler, self).__init__(service, path, wsgienv, start_resp, config, log, app)
        self._resource = resource
        self._id = id
        self._store = service.store_for(resource)

    def do_OPTIONS(self, path):
        meths = ["GET"]
        if self._resource == dbio.APP_COLL and not self._id:
            meths.append("POST")
        return self.send_options(meths)

    def do_GET(self, path, ashead=False):
        params = self.get_query_params()
        try:
            if self._id:
                if self._resource == dbio.APP_COLL and query_param_as_bool(params, "pkg"):
                    return self.export_package(params, ashead)
                rec = self._store.get(self._id)
                return self.send_json(self._select_fields(rec, params), ashead=ashead)

            return self.send_json(self.list_records(params), ashead=ashead)

        except SysAPIException as ex:
            return self.send_exception(ex, ashead)
        except FatalError as ex:
            return self.send_fatal_error(ex, ashead)

    def _select_fields(self, rec: Mapping, params: Mapping) -> Mapping:
        fields = query_param_as_list(params, "fields")
        if not fields or '*' in fields:
            return rec
        return OrderedDict((f, rec.get(f)) for f in fields if f in rec)

    def _int_param(self, params: Mapping, name: str, default: int=None) -> int:
        vals = params.get(name)
        if not vals or not vals[-1].strip():
            return default
        try:
            return int(vals[-1])
        except ValueError:
            raise FatalError(400, "Bad query parameter", "%s: not an integer: %s" % (name, vals[-1]))

    def list_records(self, params: Mapping) -> Mapping:
        """
        return a listing of records as requested by the given query parameters
        """
        ids = query_param_as_list(params, "ids") or None
        limit = self._int_param(params, "limit", MAX_RECORDS_RETURNED)
        offset = self._int_param(params, "offset", 0)

        wrapper = self.cfg.get('resource_wrapper', "resource")
        out = self.svc.list_records(self._resource, ids, limit, offset,
                                    query_param_as_bool(params, "include_count"))

        if query_param_as_bool(params, "as_list"):
            idfield = (params.get("id_field") or ["id"])[-1] or "id"
            out[wrapper] = [r.get(idfield) for r in out[wrapper]]
        else:
            out[wrapper] = [self._select_fields(r, params) for r in out[wrapper]]
        return out

    def export_package(self, params: Mapping, ashead=False):
        """
        export the requested application and send it as a package file
        """
        schemas = OrderedDict()
        for item in query_param_as_list(params, "schemas"):
            svc, _, tables = item.partition(':')
            schemas[svc] = [t for t in re.split(r'[+\s]+', tables) if t]
        packager = self.svc.packager
        packager.set_export_items(query_param_as_list(params, "services"), schemas)

        with packager.exported(self._id, query_param_as_bool(params, "include_files", True),
                               query_param_as_bool(params, "include_data", False)) as pkg:
            return self.send_file(pkg.path, "application/zip", pkg.filename, ashead=ashead)

    def do_POST(self, path):
        if self._resource != dbio.APP_COLL or self._id:
            return self.send_error_obj(405, _REASONS[405], "POST not supported on this resource")

        uploads = []
        try:
            try:
                params = get_query_params(self._env)
                overrides = AppDescriptor.parse_overrides(OrderedDict((k, v[-1]) for k, v in params.items()))
                import_url = (params.get("import_url") or [None])[-1]

                ctype, cparams = get_content_type(self._env)
                if ctype == "multipart/form-data":
                    uploads, fields = self._read_multipart()
                    import_url = import_url or fields.get("import_url")
                    fields = AppDescriptor.parse_overrides(fields)
                    fields.update(overrides)
                    overrides = fields

                elif ctype in _ZIP_TYPES:
                    filename = (params.get("filename") or [None])[-1]
                    if not filename:
                        raise BadRequest("Missing required query parameter for package upload: filename")
                    uploads = [ self._save_upload(filename, self._read_body()) ]

                elif ctype == "application/json":
                    body = self.get_json_body()
                    if not isinstance(body, Mapping):
                        raise FatalError(400, "Bad Input", "Request body must be a JSON object")
                    body = OrderedDict(body)
                    import_url = import_url or body.pop("import_url", None)
                    body.update(overrides)
                    overrides = body

                if uploads:
                    rec = self.svc.packager.import_upload(uploads, overrides)
                elif import_url:
                    rec = self.svc.packager.import_from_url(import_url, overrides)
                else:
                    raise BadRequest("No application package file or URL provided for import.")

            finally:
                for upload in uploads:
                    if upload.path and os.path.exists(upload.path):
                        os.remove(upload.path)

        except SysAPIException as ex:
            return self.send_exception(ex)
        except FatalError as ex:
            return self.send_fatal_error(ex)

        return self.send_json(rec, "Created", 201)

    def _save_upload(self, filename: str, data: bytes) -> PackageUpload:
        if not data:
            return PackageUpload(filename, None, "no content received")
        fd, path = tempfile.mkstemp(suffix="."+FILE_EXTENSION, prefix="upload_",
                                    dir=self.cfg.get('tmp_dir'))
        with os.fdopen(fd, 'wb') as out:
            out.write(data)
        return PackageUpload(filename, path)

    def _read_multipart(self):
        # file fields become saved uploads; other fields are descriptor overrides
        stream, form, files = parse_form_data(self._env)
        uploads = []
        for field, fs in files.items(multi=True):
            try:
                if fs.filename:
                    uploads.append(self._save_upload(fs.filename, fs.read()))
            finally:
                fs.close()
        return uploads, OrderedDict(form.items(multi=True))

class SystemApp(ServiceApp):
    """
    a ServiceApp providing the system API's resources.  A
    :py:class:`~dataplat.sysapi.service.SystemService` is created for the requesting tenant for
    each request.
    """

    def __init__(self, service_factory: SystemServiceFactory, log: Logger, config: Mapping={}):
        super(SystemApp, self).__init__("sysapi", log, config)
        self.svcfact = service_factory

    def create_handler(self, env: dict, start_resp: Callable, path: str, tenant: str) -> Handler:
        svc = self.svcfact.create_service_for(tenant)
        parts = [p for p in path.strip('/').split('/') if p]

        if not parts:
            return AboutHandler(svc, path, env, start_resp, self.cfg, self.log, self)
        if parts[0] in (dbio.APP_COLL, dbio.SERVICE_COLL) and len(parts) < 3:
            id = parts[1] if len(parts) > 1 else None
            return RecordHandler(svc, parts[0], id, path, env, start_resp, self.cfg, self.log, self)

        return NotFoundHandler(path, env, start_resp, tenant, self.cfg, self.log, self)

class SysAPIApp(WSGIServiceApp):
    """
    the complete system API web application, ready to be served by a WSGI server
    """

    def __init__(self, config: Mapping, dbio_client_factory: dbio.DBClientFactory=None,
                 base_ep: str=None):
        """
        initialize the App
        :param Mapping config:  the system API configuration
        :param DBClientFactory dbio_client_factory:  the factory to use to create clients to the
                                backend database.  If not specified, one is created according to
                                the ``dbio`` configuration parameter.
        :param str base_ep:     the resource path to assume as the base of all services provided by
                                this App.  If not provided, the ``base_ep`` configuration parameter
                                is used.
        """
        log = system.getSysLogger()
        if not dbio_client_factory:
            dbio_client_factory = dbio.create_dbclient_factory(config.get('dbio', {}))
        svcapp = SystemApp(SystemServiceFactory(dbio_client_factory, config, log), log, config)
        super(SysAPIApp, self).__init__(svcapp, log, base_ep, config)

app = SysAPIApp
