"""
The base REST framework classes
"""
import os, re, json
from abc import ABCMeta, abstractmethod
from functools import reduce
from logging import Logger
from typing import Mapping, Callable, List

from wsgiref.headers import Headers

from ..utils import order_accepts, get_query_params
from dataplat.base.config import ConfigurationException

__all__ = ["Handler", "NotFoundHandler", "ServiceApp", "WSGIApp", "WSGIAppSuite", "WSGIServiceApp",
           "DEF_TENANT", "TENANT_HEADER"]

DEF_TENANT = "default"
TENANT_HEADER = "HTTP_X_DATAPLAT_TENANT"

class Handler(object):
    """
    a default web request handler that also serves as a base class for the
    handlers specialized for the supported resource paths.  The ``tenant`` property holds the
    name of the tenant that the request applies to.
    """

    def __init__(self, path: str, wsgienv: dict, start_resp: Callable, tenant: str=None,
                 config: dict={}, log: Logger=None, app=None):
        self._path = path
        self._env = wsgienv
        self._start = start_resp
        self._hdr = Headers([])
        self._code = 0
        self._msg = "unknown status"
        self.cfg = config
        self.log = log

        self._app = app
        if self._app and hasattr(app, 'include_headers'):
            self._hdr = Headers(list(app.include_headers.items()))
        if not tenant:
            tenant = self.cfg.get('default_tenant', DEF_TENANT)
        self.tenant = tenant

        self._meth = self._env.get('REQUEST_METHOD', 'GET')

    @property
    def app(self):
        """
        the ServiceApp instance that created this handler
        """
        return self._app

    def send_error(self, code, message, content=None, contenttype=None, ashead=None, encoding='utf-8'):
        """
        respond to the client with an error of a given code and reason

        :param int code:        the HTTP response code to assign
        :param str message:     the briefly-stated reason to give for the error; this text
                                is sent as the message that accompanies the code in the HTTP
                                response header
        :param content:         Content to return as the body.
                                :type content: str or byte or a list of either
        :param str contenttype: the MIME type to associate with the returned content.
        :param bool ashead:     True if this is being sent as if in response to a HEAD request; if so,
                                the size and type of the content will be included in the headers, but
                                the actual content will be withheld.
        :param str encoding:    The encoding required to turn the content--when given as str--into bytes.
        """
        return self._send(code, message, content, contenttype, ashead, encoding)

    def send_unacceptable(self, message="Not Acceptable", content=None, contenttype=None, ashead=None,
                          encoding='utf-8'):
        return self.send_error(406, message, content, contenttype, ashead, encoding)

    def send_ok(self, content=None, contenttype=None, message="OK", code=200, ashead=None, encoding='utf-8'):
        """
        respond to the client a response of success.

        :param content:         Content to return as the body.  If not provided, the body will be
                                empty.
                                :type content: str or byte
        :param str contenttype: the MIME type to associate with the returned content.
        :param str message:     the briefly-stated reason to send with the status code.  The default
                                if not specified is "OK".
        :param int code:        the HTTP response code to assign (default: 200).
        :param bool ashead:     True if this is being sent as if in response to a HEAD request
        :param str encoding:    The encoding required to turn the content--when given as str--into bytes.
        """
        return self._send(code, message, content, contenttype, ashead, encoding)

    def send_json(self, data, message="OK", code=200, ashead=False, encoding='utf-8'):
        """
        Send some data formatted as JSON.
        :param data:     the data to encode in JSON
                         :type data: dict, list, or string
        """
        return self._send(code, message, json.dumps(data, indent=2), "application/json", ashead, encoding)

    def send_file(self, filepath: str, contenttype: str="application/octet-stream", filename: str=None,
                  message="OK", ashead=False):
        """
        send the contents of a file as the response body, marked as an attachment to be saved
        under the given filename.
        """
        if not filename:
            filename = os.path.basename(filepath)
        with open(filepath, 'rb') as fd:
            content = fd.read()
        self.add_header("Content-Disposition", 'attachment; filename="%s"' % filename)
        return self._send(200, message, content, contenttype, ashead, None)

    def send_options(self, allowed_methods: List[str]=None, origin: str=None, extra=None,
                     forcors: bool=True):
        """
        send a response to a OPTIONS request.  This implementation is primarily for CORS preflight requests
        :param List[str] allowed_methods:   a list of the HTTP methods that are allowed for request
        :param str                origin:   the origin to allow
        :param dict|Headers        extra:   extra headers to include in the output.
        """
        meths = list(allowed_methods or [])
        if 'OPTIONS' not in meths:
            meths.append('OPTIONS')
        if forcors:
            self.add_header('Access-Control-Allow-Methods', ", ".join(meths))
            if origin:
                self.add_header('Access-Control-Allow-Origin', origin)
            self.add_header('Access-Control-Allow-Headers', "Content-Type")
        if isinstance(extra, Mapping):
            for k,v in extra.items():
                self.add_header(k, v)
        elif isinstance(extra, (list, tuple)):
            for k,v in extra:
                self.add_header(k, v)

        return self.send_ok(message="No Content")

    def _send(self, code, message, content, contenttype, ashead, encoding):
        if ashead is None:
            ashead = self._meth.upper() == "HEAD"
        self.set_response(code, message)

        if content:
            if not isinstance(content, list):
                content = [ content ]
            badtype = [type(c) for c in content if not isinstance(c, (str, bytes))]
            if badtype:
                raise TypeError("send_*: non-str/bytes found in content")
            if not contenttype:
                contenttype = (isinstance(content[0], str) and "text/plain") or "application/octet-stream"
        elif content is None:
            content = []
        content = [(isinstance(c, str) and c.encode(encoding or 'utf-8')) or c for c in content]

        if contenttype:
            self.add_header("Content-Type", contenttype)
        if len(content) > 0:
            self.add_header("Content-Length", str(reduce(lambda x, t: x+len(t), content, 0)))

        self.end_headers()
        return (not ashead and content) or []

    def add_header(self, name, value):
        """
        record a name-value pair to be sent as part of the response header.

        :param str name:  the name of the header field to cache
        :param str value: the value to give to the header field
        :raises UnicodeEncodeError:  if name or value includes Unicode characters (see PEP 333)
        """
        # HTTP headers must be encodable as ISO-8859-1 (PEP 333)
        e = "ISO-8859-1"
        (name.encode(e), value.encode(e))

        self._hdr.add_header(name, value)

    def set_response(self, code, message):
        """
        record the response code and message to be sent when the response is triggered to push out.
        """
        self._code = code
        self._msg = message

    def end_headers(self):
        """
        trigger the delivery of response's header to the web client.
        """
        status = "{0} {1}".format(str(self._code), self._msg)
        self._start(status, self._hdr.items(), None)

    def handle(self):
        """
        handle the request encapsulated in this Handler (at construction time).

        The default implementation looks for a Handler method of the form, `do_`METH(), where METH is
        the HTTP method requested (e.g. GET, HEAD, etc.) and calls it with the requested URL path
        (as set at construction).  If the requested method is HEAD and there is no `do_HEAD()`,
        `do_GET()` is called with a second argument set to True.
        """
        meth = self._meth
        if self._env.get('HTTP_X_HTTP_METHOD_OVERRIDE'):
            meth = self._env.get('HTTP_X_HTTP_METHOD_OVERRIDE').upper()

        meth_handler = 'do_'+meth

        try:
            if hasattr(self, meth_handler):
                return getattr(self, meth_handler)(self._path)
            elif meth == "HEAD" and hasattr(self, 'do_GET'):
                return self.do_GET(self._path, ashead=True)
            else:
                return self.send_error(405, meth + " not supported on this resource")
        except Exception as ex:
            if self.log:
                self.log.exception("Unexpected failure: "+str(ex))
            return self.send_error(500, "Server failure")

    def get_accepts(self):
        """
        return the requested content types as a list ordered by their q-values.  An empty list
        is returned if no types were specified.
        """
        accepts = self._env.get('HTTP_ACCEPT')
        if not accepts:
            return []
        return order_accepts(accepts)

    def get_query_params(self):
        """
        return the request's query parameters as a dictionary of value lists
        """
        return get_query_params(self._env)

class NotFoundHandler(Handler):
    """
    a request Handler that always returns 404 Not Found.  This can be used in :py:class:`ServiceApp`
    implementations that create a handler (via :py:meth:`~ServiceApp.create_handler`) based on the
    requested path.  If the path is not recognized, an instance of this class can be returned.
    """
    def do_GET(self, path, ashead=False):
        return self.send_error(404, "Not Found")

    def do_OPTIONS(self, path):
        return self.send_options(["GET"])


class ServiceApp(metaclass=ABCMeta):
    """
    a base class WSGI implementation intended to run as a delegate handling a particular path
    within another WSGI application.  A ServiceApp is usually plugged into a larger WSGI app to
    handle requests for a particular path and its descendent paths (as in <path> and <path>/*).
    """

    def __init__(self, appname: str, log: Logger, config: Mapping=None):
        self.log = log
        if config is None:
            config = {}
        self.cfg = config
        self._name = appname

        self.include_headers = Headers()
        if config.get("include_headers"):
            try:
                if isinstance(config.get("include_headers"), Mapping):
                    self.include_headers = Headers(list(config.get("include_headers").items()))
                elif isinstance(config.get("include_headers"), list):
                    self.include_headers = Headers([tuple(h) for h in config.get("include_headers")])
                else:
                    raise TypeError("Not a list of 2-tuples")
            except (TypeError, ValueError) as ex:
                raise ConfigurationException("include_headers: must be either a dict or a list of "+
                                             "name-value pairs")
    @property
    def name(self):
        """
        a name for the service provided by this ServiceApp instance (set at construction time).
        """
        return self._name

    @abstractmethod
    def create_handler(self, env: dict, start_resp: Callable, path: str, tenant: str) -> Handler:
        """
        return a handler instance to handle a particular request to a path
        :param Mapping env:  the WSGI environment containing the request
        :param Callable start_resp:  the start_resp function to use initiate the response
        :param str path:     the path to the resource being requested, relative to the path this
                             ServiceApp is configured to handle.
        :param str tenant:   the tenant that the request applies to
        """
        raise NotImplementedError()

    def handle_path_request(self, env: dict, start_resp: Callable, path: str=None, tenant: str=None):
        """
        respond to a request on a particular (relative) URL path.
        :param Mapping env:  the WSGI environment containing the request
        :param Callable start_resp:  the start_resp function to use initiate the response
        :param str path:     the path to the resource being requested.  If None, the value of
                             env['PATH_INFO'] should be assumed.
        :param str tenant:   the tenant that the request applies to
        """
        if path is None:
            path = env.get('PATH_INFO', '')
        if not tenant:
            tenant = env.get(TENANT_HEADER) or self.cfg.get('default_tenant', DEF_TENANT)
        return self.create_handler(env, start_resp, path, tenant).handle()

    def __call__(self, env, start_resp):
        return self.handle_path_request(env, start_resp)

class WSGIApp(metaclass=ABCMeta):
    """
    A WSGI application base class for wrapping one or more ServiceApp classes.

    This base implementation will leverage these parameters from the configuration:

    ``base_ep``
        _str_ (optional).  The base endpoint URL for the web app given as a path starting with
                           a forward slash, ``/``.  All resource path requests must start with
                           this path; otherwise 404 (Not Found) is returned.
    ``name``
        _str_ (optional).  A short name to use to identify this web app (e.g. in log messages)
    ``default_tenant``
        _str_ (optional).  The tenant to assume when the client does not identify one via the
                           ``X-DataPlat-Tenant`` HTTP header; default: "default".
    """

    def __init__(self, config: Mapping, log: Logger, base_ep: str = None, name: str = None):
        """
        initialize the base information for the app.
        :param dict config:  configuration data for the app.
        :param Logger  log:  the Logger this app should use to record log messages
        :param str base_ep:  the base endpoint URL for the suite of services.  If not provided,
                             the base URL is set by the configuration (via the ``base_ep``
                             parameter).
        :param str    name:  a name to use to identify this app for context
        """
        self.log = log
        self.cfg = config
        self.name = name
        if not self.name:
            self.name = self.cfg.get("name", "")
        self.base_ep = None
        if not base_ep:
            base_ep = self.cfg.get("base_ep", "")
        base_ep = base_ep.strip('/')
        if base_ep:
            self.base_ep = '/%s/' % base_ep

    def resolve_tenant(self, env) -> str:
        """
        determine the tenant that the request applies to.  This implementation takes the value of
        the ``X-DataPlat-Tenant`` HTTP header, falling back to the configured ``default_tenant``.
        """
        tenant = env.get(TENANT_HEADER, '').strip()
        if not tenant:
            tenant = self.cfg.get('default_tenant', DEF_TENANT)
        return tenant

    def handle_request(self, env: Mapping, start_resp: Callable):
        path = re.sub(r'/+', '/', env.get('PATH_INFO', '/'))

        try:
            tenant = self.resolve_tenant(env)
        except Exception as ex:
            self.log.error("Unexpected failure while determining tenant: %s", str(ex))
            return Handler(path, env, start_resp).send_error(500, "Internal Server Error")

        if self.base_ep:
            if path.startswith(self.base_ep):
                path = path[len(self.base_ep):]

            elif self.base_ep == path+'/':
                path = ''

            elif self.base_ep.startswith(path.rstrip('/')+'/'):
                # client asked for a parent resource of the base_ep
                return Handler(path, env, start_resp).send_error(403, "Forbidden")

            else:
                return Handler(path, env, start_resp).send_error(404, "Not Found")

        return self.handle_path_request(path.strip('/'), env, start_resp, tenant)

    @abstractmethod
    def handle_path_request(self, path: str, env: Mapping, start_resp: Callable, tenant: str=None):
        """
        Dispatch a request on a resource path to a handler.
        :param str path:  the path requested by the client, relative to the base endpoint path
        :param dict env:  the WSGI environment containing all request information
        :param func start_resp:  the start-response function provided by the WSGI engine.
        :param str tenant:  the tenant the request applies to
        """
        raise NotImplementedError()

    def __call__(self, env, start_resp):
        return self.handle_request(env, start_resp)

class WSGIAppSuite(WSGIApp):
    """
    A WSGI application class that aggregates one or more :py:class:`ServiceApp` instances.  Each
    ServiceApp is served from its own resource path below the base endpoint.
    """

    def __init__(self, config: Mapping, svcapps: Mapping[str, ServiceApp], log: Logger,
                 base_ep: str = None):
        """
        initialize the suite of web services
        :param dict  config:  the configuration for the suite of services
        :param dict svcapps:  a mapping of resource paths (relative to the base endpoint URL)
                              to the ServiceApp instances that should serve them.
        :param Logger   log:  the base logger to use among the suite
        :param str  base_ep:  the base endpoint URL for the suite of services.
        """
        super(WSGIAppSuite, self).__init__(config, log, base_ep)
        self.svcapps = dict(svcapps.items())

    def handle_path_request(self, path: str, env: Mapping, start_resp: Callable, tenant: str=None):
        # find the longest registered path that is a prefix of the requested one
        base = re.sub(r'/+', '/', path)
        apppath = ''
        svcapp = self.svcapps.get(base)
        isaparent = False
        while not svcapp:
            if not base:
                if isaparent:
                    return Handler(path, env, start_resp).send_error(403, "Forbidden")
                return Handler(path, env, start_resp).send_error(404, "Not Found")

            if not isaparent:
                isaparent = any([p.startswith(base+'/') for p in self.svcapps.keys()])

            parts = base.rsplit('/', 1)
            if len(parts) < 2:
                parts = ['', base]
            apppath = "/".join([parts[1], apppath]).strip('/')
            base = parts[0]
            svcapp = self.svcapps.get(base)

        return svcapp.handle_path_request(env, start_resp, apppath, tenant)

class WSGIServiceApp(WSGIAppSuite):
    """
    a wrapper around a single ServiceApp instance.
    """

    def __init__(self, svcapp: ServiceApp, log: Logger, base_ep: str = None, config: Mapping={}):
        super(WSGIServiceApp, self).__init__(config, {'': svcapp}, log, base_ep)
