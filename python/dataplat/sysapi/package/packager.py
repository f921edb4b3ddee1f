"""
The orchestration of application package imports and exports.

A :py:class:`Packager` imports a package by moving through the following states (see
:py:class:`PackageState`):

   IDLE -> ARCHIVE_OPENED -> DESCRIPTOR_READ -> APPLICATION_CREATED -> SUBIMPORTS_RUNNING
        -> FILES_APPLIED -> COMMITTED

All database changes made from the creation of the application record onward happen within a
single transaction.  If any step fails, the transaction is rolled back (moving to
``ROLLED_BACK``) and the original error is re-raised.  Files already written to storage when a
failure occurs are not removed.

An export assembles a new package from an application record, the services and tables requested
via :py:meth:`Packager.set_export_items`, and (for storage-based applications) the application's
files.  The package is delivered as an :py:class:`ExportedPackage` whose temporary file is
removed when it is no longer needed.
"""
import os, re, shutil, tempfile
from collections import OrderedDict, namedtuple
from collections.abc import Mapping
from enum import Enum
from logging import Logger
from typing import List

from . import FILE_EXTENSION
from .archive import PackageArchive
from .manifest import (AppDescriptor, ServiceDefinition, read_app_descriptor, read_services,
                       read_schemas, read_data, write_app_descriptor, write_services, write_schemas,
                       write_data, APP_TYPE_STORAGE)
from .importers import ServicesImporter, SchemaImporter, DataImporter
from .files import FileMaterializer
from ..records import AppStore, ServiceStore
from ..dispatch import ServiceDispatcher
from ..database import DEF_RESOURCE_WRAPPER
from ..exceptions import SysAPIException, BadRequest, NotFound, InternalError, ArchiveIOError
from .. import dbio, system

__all__ = ["Packager", "PackageState", "PackageUpload", "ExportedPackage"]

DEF_DOWNLOAD_TIMEOUT = 60

class PackageState(Enum):
    """
    the stages of a package import
    """
    IDLE = "idle"
    ARCHIVE_OPENED = "archive opened"
    DESCRIPTOR_READ = "descriptor read"
    APPLICATION_CREATED = "application created"
    SUBIMPORTS_RUNNING = "sub-imports running"
    FILES_APPLIED = "files applied"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled back"

PackageUpload = namedtuple("PackageUpload", "filename path error owned", defaults=(None, True))
PackageUpload.__doc__ = """
a package file received from a client.  ``filename`` is the name the client gave the file;
``path`` is where its content was saved locally; ``error`` describes a failure to receive it (if
any); ``owned`` indicates whether the local file should be removed after the import.
"""

class ExportedPackage(object):
    """
    a completed export package held in a temporary location.  The package file is removed by
    :py:meth:`cleanup`, which is called automatically when the instance is used as a context
    manager.
    """

    def __init__(self, path: str, workdir: str, log: Logger=None):
        self.path = path
        self._workdir = workdir
        self.log = log

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    def read(self) -> bytes:
        """
        return the contents of the package file
        """
        with open(self.path, 'rb') as fd:
            return fd.read()

    def copy_to(self, dest: str) -> str:
        """
        copy the package file to a destination.  If the destination is an existing directory,
        the file will be copied into it under its own name.
        :return:  the path to the copy
        """
        if os.path.isdir(dest):
            dest = os.path.join(dest, self.filename)
        shutil.copyfile(self.path, dest)
        return dest

    def cleanup(self):
        if self._workdir and os.path.exists(self._workdir):
            shutil.rmtree(self._workdir, ignore_errors=True)
        self._workdir = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

class Packager(object):
    """
    the engine that imports and exports application packages on behalf of a tenant.

    This implementation supports the following configuration parameters:

    ``resource_wrapper``
        the name of the property that wraps lists of items in service requests
        (default: ``resource``)
    ``tmp_dir``
        the directory where downloaded packages and export packages are temporarily written
        (default: the system temporary directory)
    ``download_timeout``
        the number of seconds to wait for a package download (default: 60)
    """

    def __init__(self, dbclient: dbio.DBClient, apps: AppStore, services: ServiceStore,
                 dispatcher: ServiceDispatcher, config: Mapping=None, log: Logger=None):
        """
        :param DBClient        dbclient:  the tenant's database client; an import's transaction
                                          is opened on it
        :param AppStore            apps:  the store of application records
        :param ServiceStore    services:  the store of service records
        :param ServiceDispatcher dispatcher:  the router of requests to services
        :param Mapping           config:  the system API configuration
        :param Logger               log:  the logger to send messages to
        """
        self.dbcli = dbclient
        self.apps = apps
        self.services = services
        self.dispatcher = dispatcher
        if config is None:
            config = {}
        self.cfg = config
        if not log:
            log = system.getSysLogger().getChild("packager")
        self.log = log

        self.wrapper = self.cfg.get('resource_wrapper', DEF_RESOURCE_WRAPPER)
        self.tmpdir = self.cfg.get('tmp_dir')
        self.materializer = FileMaterializer(dispatcher, services, log=self.log.getChild("files"))
        self.state = PackageState.IDLE

        self._export_services = []
        self._export_schemas = OrderedDict()

    def _set_state(self, state: PackageState):
        self.log.debug("package state: %s -> %s", self.state.value, state.value)
        self.state = state

    def import_upload(self, upload, overrides: Mapping=None) -> Mapping:
        """
        import a package uploaded by a client
        :param upload:  the uploaded file as a :py:class:`PackageUpload`, or a list of them
        :param Mapping overrides:  application descriptor properties that should replace those
                                   in the package
        :return:  the created application record
        :raises BadRequest:     if more than one file is given or the file is not a package file
        :raises InternalError:  if the upload failed
        """
        if isinstance(upload, (list, tuple)) and not isinstance(upload, PackageUpload):
            if len(upload) > 1:
                raise BadRequest("Only a single application package file is allowed for import.")
            if len(upload) == 0:
                raise BadRequest("No application package file provided for import.")
            upload = upload[0]

        if upload.error:
            raise InternalError("Failed to receive upload of '%s': %s" % (upload.filename, upload.error))

        archive = PackageArchive.open(upload.path, upload.filename, owned=upload.owned,
                                      tmpdir=self.tmpdir, log=self.log.getChild("archive"))
        return self.import_package(archive, overrides)

    def import_from_url(self, url: str, overrides: Mapping=None) -> Mapping:
        """
        download and import a package from a URL
        :raises BadRequest:     if the URL does not refer to a package file
        :raises InternalError:  if the download fails
        """
        archive = PackageArchive.open(url, tmpdir=self.tmpdir, log=self.log.getChild("archive"),
                                      timeout=self.cfg.get('download_timeout', DEF_DOWNLOAD_TIMEOUT))
        return self.import_package(archive, overrides)

    def import_from_file(self, path: str, overrides: Mapping=None) -> Mapping:
        """
        import a package from a local file.  The file is not removed.
        """
        archive = PackageArchive.open(path, log=self.log.getChild("archive"))
        return self.import_package(archive, overrides)

    def import_package(self, archive: PackageArchive, overrides: Mapping=None) -> Mapping:
        """
        create an application and all its dependents from an opened package archive.  The archive
        is closed when the import completes.
        :param PackageArchive archive:  the opened package
        :param Mapping      overrides:  application descriptor properties that should replace those
                                        in the package
        :return:  the created application record (including its ``id``)
        """
        self.state = PackageState.IDLE
        with archive:
            self._set_state(PackageState.ARCHIVE_OPENED)

            desc = read_app_descriptor(archive).merge(overrides)
            self._set_state(PackageState.DESCRIPTOR_READ)

            try:
                with self.dbcli.transaction() as txn:
                    try:
                        app = self.apps.create(desc.to_dict())
                    except (SysAPIException, dbio.DBIOException) as ex:
                        raise InternalError("Could not create the application.\n%s" % str(ex),
                                            cause=ex)
                    self._set_state(PackageState.APPLICATION_CREATED)

                    self._set_state(PackageState.SUBIMPORTS_RUNNING)
                    nsvcs = ServicesImporter(self.services, self.log.getChild("services")) \
                            .run(read_services(archive, self.wrapper))
                    ntbls = SchemaImporter(self.dispatcher, self.wrapper, self.log.getChild("schema")) \
                            .run(read_schemas(archive))
                    nrecs = DataImporter(self.dispatcher, self.wrapper, self.log.getChild("data")) \
                            .run(read_data(archive))

                    files = []
                    if archive.entry_names():
                        try:
                            files = self.materializer.import_files(archive, desc)
                        except InternalError:
                            raise
                        except SysAPIException as ex:
                            raise InternalError("App record created, but failed to import files.\n%s"
                                                % str(ex), cause=ex)
                    self._set_state(PackageState.FILES_APPLIED)

                    txn.commit()
                    self._set_state(PackageState.COMMITTED)

            except BaseException as ex:
                # the transaction has already been rolled back on leaving its context
                self._set_state(PackageState.ROLLED_BACK)
                self.log.error("Import of application %s failed: %s", desc.name,
                               str(ex) or type(ex).__name__)
                raise

        self.log.info("Imported application %s (id=%s): %d service(s), %d table(s), %d record(s), "
                      "%d file(s)", app['name'], app['id'], nsvcs, ntbls, nrecs, len(files))
        return app

    def set_export_items(self, services: List[str]=None, schemas: Mapping=None):
        """
        set the services and tables that should be included in subsequent exports.
        :param list services:  the names of the services whose definitions should be exported
        :param Mapping schemas:  a mapping of database service names to the names of the tables
                                 to export; an empty list selects all of the service's tables
        """
        self._export_services = list(services or [])
        self._export_schemas = OrderedDict(schemas or {})

    def exported(self, app_id, include_files: bool=True, include_data: bool=False,
                 service_id=None, folder: str=None) -> ExportedPackage:
        """
        build an export package for an application.  The result should be used as a context
        manager (or its ``cleanup()`` called) so that the temporary package file gets removed:

        .. code-block:: python

           with packager.exported(app_id) as pkg:
               data = pkg.read()

        :param app_id:              the identifier of the application to export
        :param bool include_files:  if True (default) and the application is storage-based,
                                    include its files
        :param bool include_data:   if True, include the records of the exported tables
        :param service_id:          the storage service to export files from, overriding the
                                    application's setting
        :param str folder:          the storage folder to export files from, overriding the
                                    application's setting
        :raises NotFound:       if the application does not exist
        :raises InternalError:  if the package cannot be assembled
        """
        app = self.apps.find(app_id)
        if app is None:
            raise NotFound("App not found in database with app id - %s" % app_id)
        desc = AppDescriptor.from_dict(app)

        workdir = tempfile.mkdtemp(prefix="export_", dir=self.tmpdir)
        try:
            path = os.path.join(workdir, re.sub(r'[^\w\.\-]', '_', desc.name)+"."+FILE_EXTENSION)
            try:
                archive = PackageArchive.create(path, log=self.log.getChild("archive"))
            except ArchiveIOError as ex:
                raise InternalError("Can not create package file for this application.", cause=ex)

            with archive:
                write_app_descriptor(archive, desc)
                self._export_services_to(archive)
                self._export_schemas_to(archive, include_data)

                if include_files and desc.type == APP_TYPE_STORAGE:
                    self.materializer.export_files(archive, desc, service_id, folder)

        except Exception:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

        self.log.info("Exported application %s (id=%s)", desc.name, app['id'])
        return ExportedPackage(path, workdir, self.log)

    def export_to(self, app_id, dest: str, include_files: bool=True, include_data: bool=False) -> str:
        """
        export an application to a package file at the given destination
        :param str dest:  the output file path or an existing directory to write the package into
        :return:  the path to the written package file
        """
        with self.exported(app_id, include_files, include_data) as pkg:
            return pkg.copy_to(dest)

    def _export_services_to(self, archive):
        if not self._export_services:
            return
        svcs = []
        for name in self._export_services:
            rec = self.services.find_by_name(name)
            if rec is None:
                raise NotFound("Service '%s' not found." % name)
            svcs.append(ServiceDefinition.from_dict(rec))
        write_services(archive, svcs)

    def _export_schemas_to(self, archive, include_data: bool=False):
        if not self._export_schemas:
            return
        schemas = OrderedDict()
        data = OrderedDict()
        for svcname, tblnames in self._export_schemas.items():
            opts = {"names": list(tblnames)} if tblnames else None
            tables = self.dispatcher.dispatch("GET", svcname, "_schema", opts).get(self.wrapper, [])
            schemas[svcname] = tables
            if include_data:
                data[svcname] = OrderedDict()
                for tbl in tables:
                    rows = self.dispatcher.dispatch("GET", svcname, "_table/"+tbl['name'])
                    data[svcname][tbl['name']] = rows.get(self.wrapper, [])

        write_schemas(archive, schemas)
        if include_data:
            write_data(archive, data)
