"""
CLI command suite for moving applications in and out of the system as package files.  The
subcommands of ``package`` are:
  - ``import``:  create an application (and its services, tables, records, and files) from a
    package file or URL
  - ``export``:  write an application out to a package file
"""
from dataplat.utils import cli
from . import importpkg, exportpkg

default_name = "package"
help = "import or export application packages"
description = \
"""import applications from package files or export them into package files"""

def load_into(subparser, as_cmd=None):
    """
    load this command into a CLI by defining the command's arguments and options.
    :param argparser.ArgumentParser subparser:  the argument parser instance to define this command's
                                                interface into it
    """
    p = subparser
    p.description = description

    if not as_cmd:
        as_cmd = default_name
    out = cli.CommandSuite(as_cmd, p)
    out.load_subcommand(importpkg)
    out.load_subcommand(exportpkg)
    return out
