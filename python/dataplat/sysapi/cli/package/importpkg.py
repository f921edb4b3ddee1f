"""
CLI command that imports an application package into the system
"""
import logging, argparse, re

from dataplat.utils.cli import CommandFailure, explain
from dataplat.sysapi.exceptions import SysAPIException, BadRequest
from dataplat.sysapi.dbio import DBIOException
from dataplat.sysapi.package import AppDescriptor
from dataplat.sysapi.package.archive import is_url
from .. import create_service

default_name = "import"
help = "create an application from a package file"
description = """
  Create an application, along with the services, database tables, records, and files it
  includes, from an application package.  The package can be given as a local file path or as a
  URL to download it from.  Properties of the application description in the package can be
  replaced with the --name and --set options.

  The import either succeeds completely or leaves the database unchanged; however, files written
  to storage before a failure are not removed.
"""

def load_into(subparser, as_cmd=None):
    """
    load this command into a CLI by defining the command's arguments and options
    :param argparser.ArgumentParser subparser:  the argument parser instance to define this command's
                                                interface into it
    :rtype: None
    """
    p = subparser
    p.description = description
    p.add_argument("-T", "--tenant", metavar="NAME", type=str, dest="tenant",
                   help="act on behalf of the tenant NAME rather than the configured default tenant")
    p.add_argument("source", metavar="FILE|URL", type=str,
                   help="the package file to import or a URL to download it from")
    p.add_argument("-n", "--name", metavar="NAME", type=str, dest="name",
                   help="give the application the name NAME, rather than the name in the package")
    p.add_argument("-s", "--set", metavar="FIELD=VALUE", type=str, dest="overrides", action="append",
                   default=[], help="set the application property FIELD to VALUE, replacing the "+
                                    "value in the package; can be repeated")
    return None

def _parse_overrides(args, cmd):
    props = {}
    for item in args.overrides:
        if '=' not in item:
            raise CommandFailure(cmd, "--set: not of the form FIELD=VALUE: "+item, 2)
        name, val = item.split('=', 1)
        props[name.strip()] = val
    if args.name:
        props['name'] = args.name
    try:
        return AppDescriptor.parse_overrides(props)
    except BadRequest as ex:
        raise CommandFailure(cmd, "Bad property value: "+ex.message, 2)

def execute(args, config=None, log=None):
    """
    execute this command: import the package named in the arguments
    """
    cmd = default_name
    if not log:
        log = logging.getLogger(cmd)
    if not config:
        config = {}

    if isinstance(args, list):
        # cmd-line arguments not parsed yet
        p = argparse.ArgumentParser()
        load_into(p)
        args = p.parse_args(args)

    overrides = _parse_overrides(args, cmd)
    svc = create_service(args, config, log)
    explain(log, "Importing package %s for tenant %s", args.source, svc.tenant)

    try:
        if is_url(args.source):
            app = svc.packager.import_from_url(args.source, overrides)
        else:
            app = svc.packager.import_from_file(args.source, overrides)
    except SysAPIException as ex:
        raise CommandFailure(cmd, "Import failed: "+ex.message, 1, ex)
    except DBIOException as ex:
        raise CommandFailure(cmd, "Database failure during import: "+str(ex), 1, ex)

    log.info("Created application %s with id=%s", app['name'], app['id'])
    return app
