"""
sysapi:  the system API of the data platform.

The data platform exposes database tables, file storage, and configuration as REST resources on
behalf of multiple tenants.  The system API manages the platform's own configuration: the
*applications* registered by a tenant and the *services* (databases, file stores) they depend on.

Its centerpiece is the application package engine (:py:mod:`~dataplat.sysapi.package`), which
serializes an application's full definition (its metadata, dependent service definitions, database
schema, seed data, and static files) into a single portable archive, and reconstructs an
application and all its dependents from such an archive within one logical transaction.
"""
from dataplat.base import DataPlatException, SystemInfoMixin, config

try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"

_SYSAPISYSNAME = "Data Platform System API"
_SYSAPISYSABBREV = "SysAPI"

class SysAPISystem(SystemInfoMixin):
    """
    A SystemInfoMixin representing the system API
    """
    def __init__(self, subsysname="", subsysabbrev=""):
        super(SysAPISystem, self).__init__(_SYSAPISYSNAME, _SYSAPISYSABBREV,
                                           subsysname, subsysabbrev, __version__)

system = SysAPISystem()

from .exceptions import *
