"""
package:  the application package import/export engine.

An *application package* is a zip archive (with the file extension ``dfpkg``) that carries the
complete definition of an application: its descriptor (``description.json``), the definitions of
the services it depends on (``services.json``), the schema of its database tables
(``schema.json``), seed data for those tables (``data.json``), and any other entries, which are
the application's static files.

The engine is made up of the following modules:

:py:mod:`~dataplat.sysapi.package.archive`
    read and write access to package archives (:py:class:`PackageArchive`)
:py:mod:`~dataplat.sysapi.package.manifest`
    parsing and writing of the JSON sections of a package
:py:mod:`~dataplat.sysapi.package.importers`
    the section-specific import steps for services, schema, and data
:py:mod:`~dataplat.sysapi.package.files`
    transfer of application files between a package and a storage service
:py:mod:`~dataplat.sysapi.package.packager`
    the :py:class:`Packager`, which sequences an import or export and decides whether an import
    is committed or rolled back
"""
FILE_EXTENSION = "dfpkg"
DEFAULT_STORAGE_FOLDER = "applications"
DEFAULT_STORAGE_TYPE = "local_file"

from .archive import PackageArchive
from .manifest import AppDescriptor, ServiceDefinition
from .packager import Packager, PackageState, ExportedPackage
