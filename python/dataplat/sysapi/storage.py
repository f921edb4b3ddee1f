"""
The file storage service types.

A file storage service holds files organized into *containers*, each of which holds a tree of
*folders*.  :py:class:`FileStorageService` defines the operations the application package engine
needs to move files between a storage service and a package archive;
:py:class:`LocalFileStorageService` (type ``local_file``) implements them on a directory of the
local filesystem.
"""
import os
from abc import abstractmethod
from collections.abc import Mapping
from logging import Logger
from pathlib import Path
from typing import List

from . import dbio
from .dispatch import PlatformService, DispatchFailure, FailureKind
from .exceptions import BadRequest, InternalError
from dataplat.base.config import ConfigurationException

__all__ = ["FileStorageService", "LocalFileStorageService"]

class FileStorageService(PlatformService):
    """
    the interface to a service that stores files in containers and folders.  The ``archive``
    arguments are :py:class:`~dataplat.sysapi.package.archive.PackageArchive` instances.
    """

    @abstractmethod
    def container_exists(self, container: str) -> bool:
        """
        return True if the named container exists
        """
        raise NotImplementedError()

    @abstractmethod
    def folder_exists(self, container: str, folder: str) -> bool:
        """
        return True if the given folder exists within the named container
        """
        raise NotImplementedError()

    @abstractmethod
    def extract_archive_to_folder(self, container: str, folder: str, archive, flatten: bool=False,
                                  prefix: str=None) -> List[str]:
        """
        copy every remaining entry of an archive into a folder of a container, creating the
        container and folder as necessary.
        :param str container:  the name of the container to write to
        :param str    folder:  the folder within the container to write to; an empty string
                               indicates the top of the container
        :param       archive:  the archive whose entries should be copied
        :param bool  flatten:  if True, drop the directory part of each entry's name
        :param str    prefix:  a leading path to strip from each entry's name where it appears
        :return:  the paths of the stored files, relative to the storage root
        """
        raise NotImplementedError()

    @abstractmethod
    def folder_to_archive(self, container: str, folder: str, archive, path: str="",
                          recurse: bool=True) -> bool:
        """
        add the files of a folder to an archive.
        :param str container:  the name of the container to read from
        :param str    folder:  the folder within the container; an empty string indicates the
                               whole container
        :param       archive:  the archive to write to
        :param str      path:  a path to prepend to the entry names in the archive
        :param bool  recurse:  if True, include the contents of subfolders as well
        :return:  True if any files were added
        """
        raise NotImplementedError()

class LocalFileStorageService(FileStorageService):
    """
    a file storage service that keeps its files below a directory on local disk.  Each container is
    a subdirectory of the service's root directory.

    The root directory is given by the ``root_dir`` property of the service record's ``config``;
    a relative path is taken to be relative to the system API's ``storage_root_dir`` configuration
    parameter.  If ``root_dir`` is not set, a directory named after the service below
    ``storage_root_dir`` is used.
    """
    TYPE = "local_file"

    def __init__(self, record: Mapping, dbclient: dbio.DBClient, config: Mapping=None,
                 log: Logger=None):
        super(LocalFileStorageService, self).__init__(record, dbclient, config, log)
        rootdir = self.svccfg.get('root_dir')
        base = self.cfg.get('storage_root_dir')
        if not rootdir:
            if not base:
                raise ConfigurationException("%s: storage root directory not configured (need "
                                             "root_dir or storage_root_dir)" % self.name)
            rootdir = self.name
        if base and not os.path.isabs(rootdir):
            rootdir = os.path.join(base, rootdir)
        self.root = Path(rootdir).resolve()

    def _path(self, *parts) -> Path:
        parts = [p.strip('/') for p in parts if p and p.strip('/')]
        out = self.root.joinpath(*parts).resolve()
        if out != self.root and self.root not in out.parents:
            raise BadRequest("%s: path is outside of storage area: %s" % (self.name, "/".join(parts)))
        return out

    def container_exists(self, container: str) -> bool:
        if not container:
            return False
        return self._path(container).is_dir()

    def folder_exists(self, container: str, folder: str) -> bool:
        if not container:
            return False
        return self._path(container, folder).is_dir()

    def extract_archive_to_folder(self, container: str, folder: str, archive, flatten: bool=False,
                                  prefix: str=None) -> List[str]:
        if not container:
            raise BadRequest("%s: no container specified for storing files" % self.name)
        dest = self._path(container, folder)

        out = []
        for name in archive.entry_names():
            relpath = name
            if prefix and relpath.startswith(prefix):
                relpath = relpath[len(prefix):]
            if flatten:
                relpath = os.path.basename(relpath)
            relpath = relpath.strip('/')
            if not relpath:
                continue

            filepath = self._path(container, folder, relpath)
            try:
                os.makedirs(filepath.parent, exist_ok=True)
                archive.extract_entry(name, filepath)
            except OSError as ex:
                raise InternalError("%s: failed to store file %s: %s" % (self.name, relpath, str(ex)),
                                    cause=ex)
            out.append(str(filepath.relative_to(self.root)))

        self.log.debug("%s: stored %d file(s) into %s", self.name, len(out), dest)
        return out

    def folder_to_archive(self, container: str, folder: str, archive, path: str="",
                          recurse: bool=True) -> bool:
        src = self._path(container, folder)
        if not src.is_dir():
            return False
        if path and not path.endswith('/'):
            path += '/'

        added = False
        for root, dirs, files in os.walk(src):
            dirs.sort()
            if not recurse:
                dirs[:] = []
            for fn in sorted(files):
                filepath = Path(root) / fn
                archive.write_file(path + filepath.relative_to(src).as_posix(), filepath)
                added = True
        return added

    def list_folder(self, container: str, folder: str="") -> List[Mapping]:
        """
        return descriptions of the files and subfolders directly within a folder
        """
        dirpath = self._path(container, folder)
        if not dirpath.is_dir():
            raise DispatchFailure(FailureKind.NOT_FOUND,
                                  "%s: folder not found: %s" % (self.name, "/".join([container, folder])))
        out = []
        for item in sorted(dirpath.iterdir()):
            out.append({
                "name": item.name,
                "path": item.relative_to(self.root).as_posix(),
                "type": "folder" if item.is_dir() else "file"
            })
        return out

    def handle_request(self, verb: str, resource: str, options: Mapping=None, payload=None):
        if verb != "GET":
            raise DispatchFailure(FailureKind.BAD_REQUEST,
                                  "%s: %s not supported on resource %s" % (self.name, verb, resource))
        wrapper = self.cfg.get('resource_wrapper', "resource")
        parts = resource.strip('/').split('/', 1)
        if not parts[0]:
            if not self.root.is_dir():
                return { wrapper: [] }
            return { wrapper: [{"name": d.name, "path": d.name, "type": "folder"}
                               for d in sorted(self.root.iterdir()) if d.is_dir()] }
        return { wrapper: self.list_folder(parts[0], parts[1] if len(parts) > 1 else "") }
