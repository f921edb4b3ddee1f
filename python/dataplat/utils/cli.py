"""
A small framework for command-line tools built from nested subcommands (e.g. ``sysadm package
import``).

A subcommand is a module (or object) with ``default_name``, ``help``, and ``description``
attributes and two functions:

``load_into(subparser, as_cmd=None)``
    defines the subcommand's arguments in the given ``ArgumentParser``.  It returns None, or a
    :py:class:`CommandSuite` holding further subcommands, which then runs on its behalf.
``execute(args, config, log)``
    runs the subcommand with the parsed arguments, its configuration, and a Logger.  Failures are
    reported by raising :py:class:`CommandFailure`.
"""
import os, sys, logging
from argparse import ArgumentParser, HelpFormatter

from dataplat.base import StateException
from dataplat.base import config as cfgmod
from dataplat.base.config import ConfigurationException

EXPLAIN = cfgmod.NORMAL
SUBCMD_HELP = "Run '%(prog)s CMD -h' for help specifically on CMD."

def explain(log, message, *params):
    """
    log a message at the NORMAL level: it goes to the log file, but to the terminal only when
    --verbose is given
    """
    log.log(EXPLAIN, message, *params)

class _ParagraphFormatter(HelpFormatter):
    # wrap each blank-line-separated paragraph on its own
    def _fill_text(self, text, width, indent):
        fill = super(_ParagraphFormatter, self)._fill_text
        return "\n\n".join(fill(para, width, indent) for para in text.split("\n\n"))

def _note_subcommands(parser):
    parser.epilog = SUBCMD_HELP + ("\n\n" + parser.epilog if parser.epilog else "")

def define_prog_opts(progname, description=None, epilog=None, parser=None) -> ArgumentParser:
    """
    return a parser that accepts the global options of a program made of subcommands
    :param str progname:     the program name shown in help and usage messages
    :param str description:  the text shown before the description of the arguments
    :param str epilog:       the text shown after the description of the arguments
    :param ArgumentParser parser:  an existing parser to add the options to
    """
    if not parser:
        parser = ArgumentParser(progname, description=description, epilog=epilog,
                                formatter_class=_ParagraphFormatter)
    _note_subcommands(parser)

    opt = parser.add_argument
    opt("-w", "--workdir", type=str, dest='workdir', metavar='DIR', default="",
        help="resolve relative file paths (including the log file) against DIR; default='.'")
    opt("-c", "--config", type=str, dest='conf', metavar='FILE',
        help="read the configuration from FILE")
    opt("-l", "--logfile", type=str, dest='logfile', metavar='FILE',
        help="write log messages to FILE instead of the configured log file")
    opt("-q", "--quiet", action="store_true", dest='quiet',
        help="do not print messages to standard error")
    opt("-D", "--debug", action="store_true", dest='debug',
        help="record DEBUG messages in the log file")
    opt("-v", "--verbose", action="store_true", dest='verbose',
        help="also print explanatory (and, with -D, DEBUG) messages to standard error")
    return parser

def command_config(config, cmdname):
    """
    return the configuration for the named subcommand.  Properties set under ``cmd.{cmdname}``
    in the given configuration replace the general ones; the ``cmd`` property is dropped.
    """
    percmd = config.get('cmd')
    if percmd is None:
        return config
    out = cfgmod.merge_config(dict((k, v) for k, v in config.items() if k != 'cmd'), {})
    if cmdname in percmd:
        out = cfgmod.merge_config(percmd[cmdname], out)
    return out

class CommandFailure(Exception):
    """
    raised when a command fails.  The program should exit with the failure's ``stat``:
    1 when the operation failed, 2 for missing or misused options, 6 for a configuration
    error, and 10 when an unrecognized subcommand was requested.
    """

    def __init__(self, cmdname, message, exstat=1, cause=None):
        if not message:
            message = str(cause) if cause else "Unknown command failure"
        super(CommandFailure, self).__init__(message)
        self.cmd = cmdname
        self.stat = exstat
        self.cause = cause

    def within(self, cmdname):
        """
        record that this failure happened under the named parent command, so that ``cmd`` reads
        as the full subcommand path (e.g. "package import")
        """
        if self.cmd and self.cmd != cmdname:
            self.cmd = cmdname + " " + self.cmd
        else:
            self.cmd = cmdname
        return self

class CommandSuite(object):
    """
    a command whose work is done by one of its subcommands
    """

    def __init__(self, suitename, parser=None, title="subcommands", dest=None):
        """
        :param str suitename:  the name of this command
        :param ArgumentParser parser:  the parser to register the subcommands with
        :param str dest:       the name of the parsed-argument attribute that will hold the
                               chosen subcommand; default: ``{suitename}_subcmd``
        """
        self.suitename = suitename
        self._dest = dest or suitename+"_subcmd"
        self._cmds = {}
        self._subparsers = None
        if parser:
            self._subparsers = parser.add_subparsers(title=title, dest=self._dest)

    def load_subcommand(self, cmdmod, cmdname=None):
        """
        add a subcommand to this suite
        :param cmdmod:        the module or object implementing the subcommand
        :param str cmdname:   the name that invokes it; default: its ``default_name``
        :raises StateException:  if ``cmdmod`` does not look like a subcommand
        """
        if not hasattr(cmdmod, "load_into"):
            raise StateException("command module/object has no load_into() function: " + repr(cmdmod))
        if not cmdname:
            cmdname = cmdmod.default_name

        subparser = self._subparsers.add_parser(cmdname, help=cmdmod.help,
                                                description=getattr(cmdmod, 'description', None),
                                                formatter_class=_ParagraphFormatter)
        suite = cmdmod.load_into(subparser, cmdname)
        if suite is not None:
            _note_subcommands(subparser)
        self._cmds[cmdname] = suite or cmdmod

    def _run(self, cmdname, args, config, log):
        cmd = self._cmds.get(cmdname)
        if cmd is None:
            raise CommandFailure(self.suitename, "Missing or unrecognized subcommand: "+str(cmdname), 10)
        try:
            return cmd.execute(args, command_config(config, cmdname), log.getChild(cmdname))
        except CommandFailure as ex:
            raise ex.within(cmdname)

    def execute(self, args, config=None, log=None):
        """
        run the subcommand chosen in the parsed arguments
        """
        if not log:
            log = logging.getLogger(self.suitename)
        return self._run(getattr(args, self._dest, None), args, config or {}, log)

class CLISuite(CommandSuite):
    """
    the top of a command-line program: it parses the command line, loads the configuration,
    sets up the working directory and logging, and then runs the requested command.
    """

    def __init__(self, progname, defconffile=None, parser=None):
        """
        :param str progname:     the program's name
        :param str defconffile:  the configuration file to read when --config is not given
        :param ArgumentParser parser:  a parser with the global options already defined (see
                                 :py:func:`define_prog_opts`)
        """
        if not parser:
            parser = define_prog_opts(progname)
        self.parser = parser
        self._defconffile = defconffile
        super(CLISuite, self).__init__(progname, parser, "commands", "cmd")

    def parse_args(self, args):
        return self.parser.parse_args(args)

    def load_config(self, args):
        """
        read the file given by --config, else the default configuration file if it exists
        """
        if args.conf:
            return cfgmod.load_from_file(args.conf)
        if self._defconffile and os.path.isfile(self._defconffile):
            return cfgmod.load_from_file(self._defconffile)
        return {}

    def _set_working_dir(self, args, config):
        if args.workdir:
            workdir = os.path.abspath(args.workdir)
            if not os.path.isdir(workdir):
                raise CommandFailure(args.cmd, "Working dir is not an existing directory: "+workdir, 2)
        else:
            workdir = os.path.abspath(config.get('working_dir') or os.getcwd())
        config['working_dir'] = workdir

    def _terminal_handler(self, args):
        if args.verbose:
            level = (args.debug and logging.DEBUG) or cfgmod.NORMAL
            fmt = "%(name)s %(levelname)s: %(message)s"
        else:
            level = logging.INFO
            fmt = self.suitename + " %(levelname)s: %(message)s"
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt))
        return handler

    def configure_log(self, args, config):
        """
        send log messages to the log file and, unless --quiet was given, to standard error.  The
        log file defaults to ``{progname}.log`` in the working directory.
        :return:  the program's Logger
        """
        workdir = config['working_dir']
        if args.logfile:
            config['logfile'] = os.path.join(workdir, args.logfile)
        config.setdefault('logfile', self.suitename + ".log")
        config.setdefault('logdir', workdir)
        cfgmod.configure_log(level=(args.debug and logging.DEBUG) or cfgmod.NORMAL, config=config)

        if not args.quiet:
            logging.getLogger().addHandler(self._terminal_handler(args))

        log = logging.getLogger("cli."+self.suitename)
        log.setLevel(cfgmod.NORMAL)
        if args.verbose:
            log.info("FYI: Writing log messages to %s", cfgmod.global_logfile)
        return log

    def execute(self, args, config=None):
        """
        run the command given on the command line
        :param args:  the command-line arguments as a list of strings, or as an already parsed
                      ``argparse.Namespace``
        :param dict config:  the configuration to use; if None, it is read via :py:meth:`load_config`
        """
        cmdline = None
        if isinstance(args, list):
            cmdline = args
            args = self.parse_args(args)
        if not args.cmd:
            raise CommandFailure(self.suitename, "Missing command", 2)

        if config is None:
            config = self.load_config(args)
        config = command_config(config, args.cmd)
        self._set_working_dir(args, config)

        log = self.configure_log(args, config)
        if cmdline:
            explain(log, "Executing: %s %s", self.suitename, " ".join(cmdline))

        try:
            return self._run(args.cmd, args, config, log)
        except ConfigurationException as ex:
            raise CommandFailure(args.cmd, "Configuration error: "+str(ex), 6, ex)
