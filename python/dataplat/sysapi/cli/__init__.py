"""
command-line interfaces to the system API.  The commands operate directly on the system's database
and file storage rather than going through the REST interface.  See :py:mod:`.sysadm` for the
``sysadm`` program.
"""
from collections.abc import Mapping
from logging import Logger

from ..service import SystemService
from .. import dbio

def create_service(args, config: Mapping, log: Logger=None) -> SystemService:
    """
    create a SystemService acting on behalf of the tenant selected on the command line (via the
    ``tenant`` argument), or the configured default tenant.
    """
    tenant = getattr(args, 'tenant', None) or config.get('default_tenant', dbio.DEF_TENANT)
    fact = dbio.create_dbclient_factory(config.get('dbio', {}))
    return SystemService(fact, config, tenant, log)
