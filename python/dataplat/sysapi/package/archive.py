"""
Access to application package archives.

A :py:class:`PackageArchive` is opened either for reading (to import a package) or for writing (to
export one).  When reading, entries are consumed as they are processed by marking them deleted so
that the entries left over at the end are exactly the application's files.  When writing, entries
are collected and flushed into the zip file when the archive is closed.

An archive can own its backing file (e.g. a downloaded or uploaded temporary file); an owned file
is removed when the archive is closed.  Archives are context managers:

.. code-block:: python

   with PackageArchive.open("myapp.dfpkg") as archive:
       data = archive.read_entry("description.json")
"""
import os, re, shutil, tempfile, zipfile
from collections import OrderedDict
from logging import Logger
from pathlib import Path
from typing import List, Union
from urllib.parse import urlparse

import requests

from . import FILE_EXTENSION
from .. import system
from ..exceptions import FormatError, InternalError, ArchiveIOError

__all__ = ["PackageArchive", "has_package_extension", "is_url"]

_url_re = re.compile(r'^https?://', re.I)

def is_url(source: str) -> bool:
    """
    return True if the given package source is an HTTP(S) URL
    """
    return bool(_url_re.match(str(source)))

def has_package_extension(filename: str) -> bool:
    """
    return True if the given file name (or URL) ends with the package file extension
    """
    if is_url(filename):
        filename = urlparse(filename).path
    return os.path.splitext(str(filename))[1].lower() == "." + FILE_EXTENSION

def _check_entry_name(name: str):
    if not name or name.startswith('/') or '\\' in name or \
       any(p == '..' for p in name.split('/')):
        raise ArchiveIOError("Illegal entry name for package file: "+str(name))

class PackageArchive(object):
    """
    a package file opened for reading or writing.  Instances are created via :py:meth:`open` or
    :py:meth:`create`.
    """

    def __init__(self, path: str, zipf: zipfile.ZipFile, writable: bool=False, owned: bool=False,
                 log: Logger=None):
        self._path = str(path)
        self._zf = zipf
        self._writable = writable
        self._owned = owned
        self._deleted = set()
        self._pending = OrderedDict()
        if not log:
            log = system.getSysLogger().getChild("archive")
        self.log = log

    @classmethod
    def open(cls, source: str, filename: str=None, owned: bool=False, tmpdir: str=None,
             log: Logger=None, timeout: float=60):
        """
        open a package file for reading
        :param str   source:  the local path or HTTP(S) URL of the package file
        :param str filename:  the name the package file was given by its provider; its extension
                              is used to validate the file type.  If not provided, the name in
                              ``source`` is used.
        :param bool   owned:  if True, the local file is removed when the archive is closed
                              (or fails to open).  A downloaded file is always owned.
        :param str   tmpdir:  the directory to download a remote file into
        :param Logger   log:  the logger to send messages to
        :param float timeout: the number of seconds to wait on a download before giving up
        :raises FormatError:     if the file does not have the package file extension
        :raises InternalError:   if a remote file could not be downloaded
        :raises ArchiveIOError:  if the file is not a readable zip file
        """
        source = str(source)
        try:
            if not has_package_extension(filename or source):
                raise FormatError("Only package files ending with '%s' are allowed for import." %
                                  FILE_EXTENSION)

            if is_url(source):
                source = cls._download(source, tmpdir, timeout, log)
                owned = True

            try:
                zf = zipfile.ZipFile(source, 'r')
            except (zipfile.BadZipFile, OSError) as ex:
                raise ArchiveIOError("Error opening zip file.", cause=ex)

        except Exception:
            if owned and os.path.isfile(source):
                os.remove(source)
            raise

        return cls(source, zf, False, owned, log)

    @classmethod
    def _download(cls, url: str, tmpdir: str=None, timeout: float=60, log: Logger=None) -> str:
        if not log:
            log = system.getSysLogger().getChild("archive")
        fd, path = tempfile.mkstemp(suffix="."+FILE_EXTENSION, prefix="import_", dir=tmpdir)
        os.close(fd)
        log.info("Downloading package from %s", url)
        try:
            resp = requests.get(url, stream=True, timeout=timeout)
            try:
                resp.raise_for_status()
                with open(path, 'wb') as fd:
                    for chunk in resp.iter_content(chunk_size=65536):
                        if chunk:
                            fd.write(chunk)
            finally:
                resp.close()
        except (requests.RequestException, OSError) as ex:
            os.remove(path)
            raise InternalError("Failed to import package %s.\n%s" % (url, str(ex)), cause=ex)
        return path

    @classmethod
    def create(cls, path: str, log: Logger=None):
        """
        create a new package file for writing.  Entries added to it are written when the archive
        is closed.
        :raises ArchiveIOError:  if the file cannot be created
        """
        try:
            zf = zipfile.ZipFile(str(path), 'w', zipfile.ZIP_DEFLATED)
        except OSError as ex:
            raise ArchiveIOError("Can not create package file %s: %s" % (path, str(ex)), cause=ex)
        return cls(path, zf, True, False, log)

    @property
    def path(self) -> str:
        """
        the path to the package file on local disk
        """
        return self._path

    @property
    def writable(self) -> bool:
        return self._writable

    @property
    def closed(self) -> bool:
        return self._zf is None

    def _check_open(self):
        if self._zf is None:
            raise ArchiveIOError("Package file is closed: "+self._path)

    def _archive_names(self) -> List[str]:
        if self._writable:
            return list(self._pending.keys())
        return [n for n in self._zf.namelist() if not n.endswith('/')]

    def entry_names(self) -> List[str]:
        """
        return the names of the entries that have not been deleted, in archive order.
        Directory entries are not included.
        """
        self._check_open()
        return [n for n in self._archive_names() if n not in self._deleted]

    def has_entry(self, name: str) -> bool:
        self._check_open()
        return name not in self._deleted and name in self._archive_names()

    def read_entry(self, name: str) -> bytes:
        """
        return the contents of the named entry, or None if the entry does not exist or has
        been deleted
        :raises ArchiveIOError:  if the entry exists but cannot be read
        """
        if not self.has_entry(name):
            return None
        if self._writable:
            data = self._pending[name]
            if isinstance(data, Path):
                return data.read_bytes()
            return data
        try:
            return self._zf.read(name)
        except (zipfile.BadZipFile, OSError) as ex:
            raise ArchiveIOError("Failed to read %s from package file: %s" % (name, str(ex)), cause=ex)

    def delete_entry(self, name: str):
        """
        mark the named entry as consumed so that it is no longer visible.  Nothing happens if
        the entry does not exist.
        """
        self._check_open()
        if name in self._pending:
            del self._pending[name]
        else:
            self._deleted.add(name)

    def write_entry(self, name: str, data: Union[str, bytes]):
        """
        add an entry to the archive, replacing any previous entry of the same name
        :param str name:  the entry's path within the archive
        :param data:      the entry's contents; a str is encoded as UTF-8
        :raises ArchiveIOError:  if the archive is not open for writing or the name is illegal
        """
        self._check_open()
        if not self._writable:
            raise ArchiveIOError("Package file not open for writing: "+self._path)
        _check_entry_name(name)
        if isinstance(data, str):
            data = data.encode('utf-8')
        self._pending[name] = bytes(data)
        self._deleted.discard(name)

    def write_file(self, name: str, path: str):
        """
        add a file from disk as an entry of the archive
        """
        self._check_open()
        if not self._writable:
            raise ArchiveIOError("Package file not open for writing: "+self._path)
        _check_entry_name(name)
        path = Path(path)
        if not path.is_file():
            raise ArchiveIOError("Can not add missing file to package: "+str(path))
        self._pending[name] = path
        self._deleted.discard(name)

    def extract_entry(self, name: str, dest: str) -> str:
        """
        copy the contents of the named entry to a file
        :param str name:  the name of the entry
        :param str dest:  the path of the file to write to
        :return:  the destination path
        :raises ArchiveIOError:  if the entry does not exist or cannot be read
        """
        if not self.has_entry(name):
            raise ArchiveIOError("Entry not found in package file: "+name)
        if self._writable:
            data = self._pending[name]
            if isinstance(data, Path):
                shutil.copyfile(data, dest)
            else:
                with open(dest, 'wb') as fd:
                    fd.write(data)
            return dest

        try:
            with self._zf.open(name) as src, open(dest, 'wb') as fd:
                shutil.copyfileobj(src, fd)
        except zipfile.BadZipFile as ex:
            raise ArchiveIOError("Failed to extract %s from package file: %s" % (name, str(ex)),
                                 cause=ex)
        return dest

    def close(self):
        """
        close the archive, writing out any pending entries.  An owned file is removed.  Closing
        an already closed archive has no effect.
        """
        if self._zf is None:
            return
        try:
            if self._writable:
                for name, data in self._pending.items():
                    if isinstance(data, Path):
                        self._zf.write(str(data), name)
                    else:
                        self._zf.writestr(name, data)
            self._zf.close()
        except (zipfile.BadZipFile, OSError) as ex:
            raise ArchiveIOError("Failed to write package file %s: %s" % (self._path, str(ex)), cause=ex)
        finally:
            self._zf = None
            self._pending = OrderedDict()
            if self._owned:
                self._remove()

    def discard(self):
        """
        close the archive without writing pending entries and remove its file
        """
        try:
            if self._zf is not None:
                self._zf.close()
        except (zipfile.BadZipFile, OSError) as ex:
            self.log.warning("Trouble closing package file %s: %s", self._path, str(ex))
        finally:
            self._zf = None
            self._pending = OrderedDict()
            self._remove()

    def _remove(self):
        if os.path.isfile(self._path):
            try:
                os.remove(self._path)
            except OSError as ex:
                self.log.warning("Unable to remove package file %s: %s", self._path, str(ex))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and self._writable:
            self.discard()
        else:
            self.close()
        return False
