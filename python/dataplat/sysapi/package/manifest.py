"""
Reading and writing the JSON sections of an application package.

A package carries up to four JSON entries, each decoded into explicit structures:

``description.json`` (or the legacy ``app.json``)
    the application descriptor, decoded into an :py:class:`AppDescriptor`; required.
``services.json``
    a list of service definitions, decoded into :py:class:`ServiceDefinition` instances.
``schema.json``
    the table definitions to create, by service::

        {"service": [{"name": "db", "table": [{"name": "todo", ...}, ...]}, ...]}

``data.json``
    the records to load into tables, by service and table::

        {"service": [{"name": "db", "table": [{"name": "todo", "record": [{...}, ...]}]}]}

Each ``read_*`` function deletes the entries it reads from the archive, so that a section is
processed at most once and the entries remaining afterward are the application's files.
"""
import json
from collections import OrderedDict, namedtuple
from collections.abc import Mapping
from typing import List

from ..exceptions import BadRequest, InternalError, ArchiveIOError

__all__ = ["AppDescriptor", "ServiceDefinition", "read_app_descriptor", "read_services",
           "read_schemas", "read_data", "write_app_descriptor", "write_services", "write_schemas",
           "write_data", "DESCRIPTION_ENTRY", "LEGACY_DESCRIPTION_ENTRY", "SERVICES_ENTRY",
           "SCHEMA_ENTRY", "DATA_ENTRY", "APP_TYPES"]

DESCRIPTION_ENTRY = "description.json"
LEGACY_DESCRIPTION_ENTRY = "app.json"
SERVICES_ENTRY = "services.json"
SCHEMA_ENTRY = "schema.json"
DATA_ENTRY = "data.json"

APP_TYPE_NONE = "none"
APP_TYPE_STORAGE = "storage"
APP_TYPES = (APP_TYPE_NONE, APP_TYPE_STORAGE, "url", "path")

NO_DESCRIPTION_MSG = "No application description file in this package file."
NO_SCHEMA_MSG = "Could not create the database tables for this application.\n" \
                "Database service or schema not found in schema.json."
NO_DATA_MSG = "Could not create the database tables for this application.\n" \
              "Database service or data not found."

_BOOL_STRINGS = { "true": True, "1": True, "yes": True, "false": False, "0": False, "no": False }

def _get_str(data: Mapping, prop: str, default=None, what="application"):
    val = data.get(prop)
    if val is None:
        return default
    if not isinstance(val, str):
        raise BadRequest("%s property, %s, must be a string" % (what, prop))
    return val

def _get_bool(data: Mapping, prop: str, default: bool, what="application"):
    val = data.get(prop)
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    if isinstance(val, int) and val in (0, 1):
        return bool(val)
    raise BadRequest("%s property, %s, must be a boolean" % (what, prop))

def _get_id(data: Mapping, prop: str, what="application"):
    val = data.get(prop)
    if val is None or val == "":
        return None
    if isinstance(val, bool):
        raise BadRequest("%s property, %s, must be an integer identifier" % (what, prop))
    if isinstance(val, int):
        return val
    if isinstance(val, str) and val.strip().isdigit():
        return int(val.strip())
    raise BadRequest("%s property, %s, must be an integer identifier" % (what, prop))

_APP_FIELDS = ("name", "description", "is_active", "type", "path", "url", "requires_fullscreen",
               "allow_fullscreen_toggle", "toggle_location", "storage_service_id", "storage_container")
_APP_DEFAULTS = (None, False, APP_TYPE_NONE, None, None, False, True, "top", None, None)

class AppDescriptor(namedtuple("_AppDescriptor", _APP_FIELDS, defaults=_APP_DEFAULTS)):
    """
    the description of an application as it appears in a package and in the application store.

    ``storage_service_id`` and ``storage_container`` locate the application's files.  A
    ``storage_container`` of None means the default folder; an empty string means a container
    named after the application.
    """
    __slots__ = ()

    EXPORT_FIELDS = _APP_FIELDS[:9]
    _BOOL_FIELDS = ("is_active", "requires_fullscreen", "allow_fullscreen_toggle")
    _ID_FIELDS = ("storage_service_id",)

    @classmethod
    def from_dict(cls, data: Mapping) -> "AppDescriptor":
        """
        decode a descriptor from its JSON form.  The application's name is taken from the
        ``api_name`` property if present, otherwise from ``name``.  Unrecognized properties are
        ignored; unset properties take their default values.
        :raises BadRequest:  if the name is missing or a property has the wrong type
        """
        if not isinstance(data, Mapping):
            raise BadRequest("Application description must be a JSON object")
        name = _get_str(data, "api_name") or _get_str(data, "name")
        if not name or not name.strip():
            raise BadRequest("Application description is missing its name")

        apptype = _get_str(data, "type", APP_TYPE_NONE)
        return cls(name=name.strip(),
                   description=_get_str(data, "description"),
                   is_active=_get_bool(data, "is_active", False),
                   type=apptype or APP_TYPE_NONE,
                   path=_get_str(data, "path"),
                   url=_get_str(data, "url"),
                   requires_fullscreen=_get_bool(data, "requires_fullscreen", False),
                   allow_fullscreen_toggle=_get_bool(data, "allow_fullscreen_toggle", True),
                   toggle_location=_get_str(data, "toggle_location", "top"),
                   storage_service_id=_get_id(data, "storage_service_id"),
                   storage_container=_get_str(data, "storage_container"))

    @classmethod
    def parse_overrides(cls, params: Mapping) -> OrderedDict:
        """
        convert descriptor property values given as strings (e.g. from query parameters or
        command-line options) to their proper types.  Properties that are not descriptor fields
        are dropped.
        :raises BadRequest:  if a value cannot be converted
        """
        out = OrderedDict()
        for prop, val in params.items():
            if prop not in cls._fields:
                continue
            if isinstance(val, str):
                if prop in cls._BOOL_FIELDS:
                    if val.strip().lower() not in _BOOL_STRINGS:
                        raise BadRequest("application property, %s, must be a boolean" % prop)
                    val = _BOOL_STRINGS[val.strip().lower()]
                elif prop in cls._ID_FIELDS:
                    val = _get_id({prop: val}, prop)
            out[prop] = val
        return out

    def merge(self, overrides: Mapping) -> "AppDescriptor":
        """
        return a new descriptor in which the given property values replace this descriptor's
        :raises BadRequest:  if an override has the wrong type
        """
        if not overrides:
            return self
        data = self.to_dict()
        for prop, val in overrides.items():
            if prop in self._fields or prop == "api_name":
                data[prop] = val
        return self.from_dict(data)

    def to_dict(self) -> OrderedDict:
        """
        return the full descriptor as a dictionary, as saved in the application store
        """
        return OrderedDict(self._asdict())

    def export_dict(self) -> OrderedDict:
        """
        return the properties of the descriptor that are included in an exported package
        """
        return OrderedDict((f, getattr(self, f)) for f in self.EXPORT_FIELDS)

class ServiceDefinition(namedtuple("_ServiceDefinition",
                                   ("name", "type", "label", "description", "is_active", "config"),
                                   defaults=(None, None, True, None))):
    """
    the definition of a service that an application depends on
    """
    __slots__ = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> "ServiceDefinition":
        """
        decode a service definition from its JSON form
        :raises BadRequest:  if the name or type is missing or a property has the wrong type
        """
        if not isinstance(data, Mapping):
            raise BadRequest("Service definition must be a JSON object")
        name = _get_str(data, "name", what="service")
        stype = _get_str(data, "type", what="service")
        if not name or not stype:
            raise BadRequest("Service definition requires both a name and a type")
        config = data.get("config")
        if config is not None and not isinstance(config, Mapping):
            raise BadRequest("service property, config, must be an object")
        return cls(name=name, type=stype,
                   label=_get_str(data, "label", what="service"),
                   description=_get_str(data, "description", what="service"),
                   is_active=_get_bool(data, "is_active", True, what="service"),
                   config=dict(config or {}))

    def to_dict(self) -> OrderedDict:
        out = OrderedDict(self._asdict())
        out['config'] = dict(self.config or {})
        return out

def _read_json_entry(archive, name: str):
    data = archive.read_entry(name)
    if data is None:
        return None
    archive.delete_entry(name)
    if not data.strip():
        # an empty section counts as missing
        return None
    try:
        return json.loads(data.decode('utf-8'), object_pairs_hook=OrderedDict)
    except (ValueError, UnicodeDecodeError) as ex:
        raise BadRequest("Failed to parse %s in package file: %s" % (name, str(ex)), cause=ex)

def _unwrap(data, wrapper: str):
    if isinstance(data, Mapping) and wrapper in data:
        return data[wrapper]
    return data

def read_app_descriptor(archive) -> AppDescriptor:
    """
    read the application descriptor from a package.  Both the current and legacy descriptor
    entries are consumed.
    :raises BadRequest:  if the package has no descriptor or it is invalid
    """
    desc = _read_json_entry(archive, DESCRIPTION_ENTRY)
    legacy = _read_json_entry(archive, LEGACY_DESCRIPTION_ENTRY)
    if desc is None:
        desc = legacy
    if desc is None:
        raise BadRequest(NO_DESCRIPTION_MSG)
    return AppDescriptor.from_dict(desc)

def read_services(archive, wrapper: str="resource") -> List[ServiceDefinition]:
    """
    read the service definitions from a package, or return None if the package has none
    :raises BadRequest:  if a service definition is invalid
    """
    data = _read_json_entry(archive, SERVICES_ENTRY)
    if data is None:
        return None
    data = _unwrap(data, wrapper)
    if isinstance(data, Mapping):
        data = [data]
    if not isinstance(data, list):
        raise BadRequest("%s: expected a list of service definitions" % SERVICES_ENTRY)
    return [ServiceDefinition.from_dict(s) for s in data]

def _service_list(data, errmsg):
    if not isinstance(data, Mapping):
        raise BadRequest(errmsg)
    svcs = data.get("service")
    if not svcs or not isinstance(svcs, list):
        raise BadRequest(errmsg)
    for svc in svcs:
        if not isinstance(svc, Mapping) or not isinstance(svc.get("name"), str) or not svc["name"]:
            raise BadRequest(errmsg)
    return svcs

def read_schemas(archive) -> OrderedDict:
    """
    read the table definitions from a package, or return None if the package has none.
    :return:  a mapping of service names to lists of table definitions
    :raises BadRequest:  if the schema section is present but names no services
    """
    data = _read_json_entry(archive, SCHEMA_ENTRY)
    if data is None:
        return None

    out = OrderedDict()
    for svc in _service_list(data, NO_SCHEMA_MSG):
        tables = svc.get("table") or []
        if not isinstance(tables, list):
            raise BadRequest("%s: table definitions for %s must be a list" % (SCHEMA_ENTRY, svc["name"]))
        out.setdefault(svc["name"], []).extend(tables)
    return out

def read_data(archive) -> OrderedDict:
    """
    read the table records from a package, or return None if the package has none.
    :return:  a mapping of service names to mappings of table names to lists of records
    :raises BadRequest:  if the data section is present but names no services
    """
    data = _read_json_entry(archive, DATA_ENTRY)
    if data is None:
        return None

    out = OrderedDict()
    for svc in _service_list(data, NO_DATA_MSG):
        tables = svc.get("table") or []
        if not isinstance(tables, list):
            raise BadRequest("%s: tables for %s must be a list" % (DATA_ENTRY, svc["name"]))
        svcdata = out.setdefault(svc["name"], OrderedDict())
        for tbl in tables:
            if not isinstance(tbl, Mapping) or not isinstance(tbl.get("name"), str):
                raise BadRequest("%s: table entry for %s is missing its name" % (DATA_ENTRY, svc["name"]))
            recs = tbl.get("record") or []
            if not isinstance(recs, list):
                raise BadRequest("%s: records for %s/%s must be a list" %
                                 (DATA_ENTRY, svc["name"], tbl["name"]))
            svcdata.setdefault(tbl["name"], []).extend(recs)
    return out

def _write_json_entry(archive, name: str, data):
    archive.write_entry(name, json.dumps(data, indent=2))

def write_app_descriptor(archive, desc: AppDescriptor):
    """
    write the exportable properties of an application descriptor into a package
    :raises InternalError:  if the descriptor could not be written
    """
    try:
        _write_json_entry(archive, DESCRIPTION_ENTRY, desc.export_dict())
    except (ArchiveIOError, TypeError, ValueError) as ex:
        raise InternalError("Can not include description in package file.", cause=ex)

def write_services(archive, services: List):
    """
    write service definitions (given as :py:class:`ServiceDefinition` instances or dictionaries)
    into a package
    """
    out = []
    for svc in services:
        if not isinstance(svc, ServiceDefinition):
            svc = ServiceDefinition.from_dict(svc)
        out.append(svc.to_dict())
    _write_json_entry(archive, SERVICES_ENTRY, out)

def write_schemas(archive, schemas: Mapping):
    """
    write table definitions into a package
    :param Mapping schemas:  a mapping of service names to lists of table definitions
    """
    _write_json_entry(archive, SCHEMA_ENTRY, {
        "service": [ {"name": svc, "table": list(tables)} for svc, tables in schemas.items() ]
    })

def write_data(archive, data: Mapping):
    """
    write table records into a package
    :param Mapping data:  a mapping of service names to mappings of table names to record lists
    """
    _write_json_entry(archive, DATA_ENTRY, {
        "service": [
            {"name": svc, "table": [ {"name": tbl, "record": list(recs)} for tbl, recs in tables.items() ]}
            for svc, tables in data.items()
        ]
    })
