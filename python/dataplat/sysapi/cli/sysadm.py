"""
sysadm command-line program for executing system API administrative tasks, such as importing and
exporting application packages.
"""
import logging, os, sys

from dataplat.utils import cli
from dataplat.base.config import ConfigurationException
from . import package

description = \
"""execute data platform system administration operations

The subcommands operate directly on the system database and application file storage rather than
going through the REST interface.
"""
epilog = None
default_prog_name = "sysadm"
default_conf_file = os.path.join(os.environ.get('DATAPLAT_ETC_DIR', "/etc/dataplat"), "sysadm_conf.yml")

def main(cmdname, args):
    """
    a function that executes the ``sysadm`` command-line tool.
    """
    if not cmdname:
        cmdname = default_prog_name

    argparser = cli.define_prog_opts(cmdname, description, epilog)
    sysadm = cli.CLISuite(cmdname, default_conf_file, argparser)
    sysadm.load_subcommand(package)

    return sysadm.execute(args)

if __name__ == "__main__":
    prog = os.path.splitext(os.path.basename(sys.argv[0]))[0]
    try:
        main(prog, sys.argv[1:])
        sys.exit(0)
    except cli.CommandFailure as ex:
        logging.getLogger("%s %s" % (prog, ex.cmd)).critical(str(ex))
        sys.exit(ex.stat)
    except ConfigurationException as ex:
        logging.getLogger(prog).critical("Config error: "+str(ex))
        sys.exit(6)
    except Exception as ex:
        logging.getLogger(prog).exception(ex)
        sys.exit(200)
