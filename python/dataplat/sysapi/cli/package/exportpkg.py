"""
CLI command that exports an application into a package file
"""
import logging, argparse, os
from collections import OrderedDict

from dataplat.utils.cli import CommandFailure, explain
from dataplat.sysapi.exceptions import SysAPIException
from dataplat.sysapi.dbio import DBIOException
from .. import create_service

default_name = "export"
help = "write an application out to a package file"
description = """
  Export an application to a package file that can later be imported into this or another
  system.  By default, the package includes the application's description and, for
  storage-based applications, its files.  Service definitions and database tables can be added
  with the --service and --schema options.
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
    p.add_argument("id", metavar="ID", type=str, help="the identifier of the application to export")
    p.add_argument("-o", "--output-file", metavar="FILE", type=str, dest="outfile",
                   help="write the package to FILE (or into FILE if it is a directory); the default "+
                        "is to write it into the working directory, named after the application")
    p.add_argument("-F", "--no-files", action="store_false", dest="include_files",
                   help="do not include the application's files in the package")
    p.add_argument("-d", "--include-data", action="store_true", dest="include_data",
                   help="include the records of the exported tables")
    p.add_argument("-S", "--service", metavar="NAME", type=str, dest="services", action="append",
                   default=[], help="include the definition of the service NAME; can be repeated")
    p.add_argument("-t", "--schema", metavar="SERVICE[:TABLE,...]", type=str, dest="schemas",
                   action="append", default=[],
                   help="include the named tables (or all tables) of the database service SERVICE; "+
                        "can be repeated")
    return None

def _parse_schemas(items):
    schemas = OrderedDict()
    for item in items:
        svc, _, tables = item.partition(':')
        schemas.setdefault(svc.strip(), []).extend([t.strip() for t in tables.split(',') if t.strip()])
    return schemas

def execute(args, config=None, log=None):
    """
    execute this command: export the application with the given identifier
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

    dest = args.outfile or config.get('working_dir', os.getcwd())
    svc = create_service(args, config, log)
    svc.packager.set_export_items(args.services, _parse_schemas(args.schemas))
    explain(log, "Exporting application %s for tenant %s", args.id, svc.tenant)

    try:
        path = svc.packager.export_to(args.id, dest, args.include_files, args.include_data)
    except SysAPIException as ex:
        raise CommandFailure(cmd, "Export failed: "+ex.message, 1, ex)
    except DBIOException as ex:
        raise CommandFailure(cmd, "Database failure during export: "+str(ex), 1, ex)
    except OSError as ex:
        raise CommandFailure(cmd, "Failed to write package to %s: %s" % (dest, str(ex)), 1, ex)

    log.info("Wrote application package to %s", path)
    return path
