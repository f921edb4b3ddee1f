"""
Transfer of an application's static files between a package and a file storage service.

The files of an application are located by a storage service and a folder:

  * the storage service is the one explicitly requested, else the one named in the application
    descriptor (``storage_service_id``), else the tenant's default storage service (the first
    service of type ``local_file``);
  * the folder is the one explicitly requested, else the descriptor's ``storage_container``,
    else ``applications``.

With a non-empty folder, the files live in a folder named after the application within the
container named by the folder.  With an empty folder, they live at the top of a container named
after the application.
"""
from logging import Logger
from typing import List

from dataplat.base.config import ConfigurationException

from . import DEFAULT_STORAGE_FOLDER, DEFAULT_STORAGE_TYPE
from .manifest import AppDescriptor
from ..dispatch import ServiceDispatcher
from ..records import ServiceStore
from ..storage import FileStorageService
from ..exceptions import SysAPIException, InternalError
from .. import system

__all__ = ["FileMaterializer"]

class FileMaterializer(object):
    """
    a class that writes the files of a package into application storage (on import) and collects
    them from storage into a package (on export).  Files written to storage are not covered by
    database transactions.
    """

    def __init__(self, dispatcher: ServiceDispatcher, services: ServiceStore,
                 default_folder: str=DEFAULT_STORAGE_FOLDER, default_type: str=DEFAULT_STORAGE_TYPE,
                 log: Logger=None):
        self.dispatcher = dispatcher
        self.services = services
        self.default_folder = default_folder
        self.default_type = default_type
        if not log:
            log = system.getSysLogger().getChild("files")
        self.log = log

    def default_service_id(self):
        """
        return the identifier of the tenant's default storage service, or None if it has none
        """
        rec = self.services.default_for_type(self.default_type)
        return rec['id'] if rec else None

    def resolve_service_id(self, desc: AppDescriptor, service_id=None):
        if service_id is not None:
            return service_id
        if desc.storage_service_id is not None:
            return desc.storage_service_id
        return self.default_service_id()

    def resolve_folder(self, desc: AppDescriptor, folder: str=None) -> str:
        if folder is not None:
            return folder
        if desc.storage_container is not None:
            return desc.storage_container
        return self.default_folder

    def _get_storage(self, service_id, errmsg: str) -> FileStorageService:
        # errmsg is a template taking the service id
        svc = None
        if service_id is not None:
            try:
                svc = self.dispatcher.get_service_by_id(service_id)
            except (ConfigurationException, SysAPIException) as ex:
                self.log.error("Storage service %s is not usable: %s", service_id, str(ex))
                raise InternalError(errmsg % service_id, cause=ex)
        if not isinstance(svc, FileStorageService):
            raise InternalError(errmsg % service_id)
        return svc

    def import_files(self, archive, desc: AppDescriptor, service_id=None, folder: str=None) -> List[str]:
        """
        copy the entries remaining in a package archive into the application's storage
        :param archive:  the package archive, with its manifest sections already consumed
        :param AppDescriptor desc:  the descriptor of the application being imported
        :param service_id:  the storage service to use, overriding the descriptor's
        :param str folder:  the storage folder to use, overriding the descriptor's
        :return:  the paths of the stored files
        :raises InternalError:  if the storage service cannot be found
        """
        svcid = self.resolve_service_id(desc, service_id)
        storage = self._get_storage(svcid, "App record created, but failed to import files due to "
                                           "unknown storage service with id '%s'.")

        folder = self.resolve_folder(desc, folder)
        if not folder:
            stored = storage.extract_archive_to_folder(desc.name, "", archive, prefix=desc.name+'/')
        else:
            stored = storage.extract_archive_to_folder(folder, desc.name, archive,
                                                       prefix=desc.name+'/')
        self.log.info("%s: stored %d application file(s) via %s", desc.name, len(stored), storage.name)
        return stored

    def export_files(self, archive, desc: AppDescriptor, service_id=None, folder: str=None) -> bool:
        """
        add the application's files from storage to a package archive
        :return:  True if any files were added
        :raises InternalError:  if the storage service is not set or cannot be found
        """
        svcid = self.resolve_service_id(desc, service_id)
        if svcid is None:
            raise InternalError("Can not find storage service identifier.")
        storage = self._get_storage(svcid, "Can not find storage service by identifier '%s'.")

        folder = self.resolve_folder(desc, folder)
        added = False
        if not folder:
            if storage.container_exists(desc.name):
                added = storage.folder_to_archive(desc.name, "", archive)
        elif storage.folder_exists(folder, desc.name):
            added = storage.folder_to_archive(folder, desc.name, archive)

        if not added:
            self.log.info("%s: no application files found in storage", desc.name)
        return added
