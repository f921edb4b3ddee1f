import os, sys, logging, argparse, pdb, tempfile
import unittest as test
from types import SimpleNamespace

from dataplat.utils import cli
from dataplat.base import StateException
from dataplat.base import config as cfgmod

tmpdir = tempfile.TemporaryDirectory(prefix="_test_cli.")

def tearDownModule():
    tmpdir.cleanup()

def make_cmd(name, result="done", failure=None):
    # a minimal subcommand object
    calls = []
    def load_into(subparser, as_cmd=None):
        subparser.add_argument("thing", metavar="THING", type=str)
        return None
    def execute(args, config=None, log=None):
        calls.append((args, config, log))
        if failure:
            raise failure
        return result
    return SimpleNamespace(default_name=name, help="do "+name, description="do "+name+" things",
                           load_into=load_into, execute=execute, calls=calls)

class TestModFunctions(test.TestCase):

    def test_define_prog_opts(self):
        p = cli.define_prog_opts("sysadm", "administer the system")
        self.assertEqual(p.prog, "sysadm")
        self.assertIn("administer", p.description)
        self.assertIn("help specifically on CMD", p.epilog)

        args = p.parse_args([])
        self.assertEqual(args.workdir, "")
        self.assertIsNone(args.conf)
        self.assertIsNone(args.logfile)
        self.assertFalse(args.quiet)
        self.assertFalse(args.verbose)
        self.assertFalse(args.debug)

        parser = argparse.ArgumentParser("fred", None, "go to work", "good work")
        p = cli.define_prog_opts("goob", parser=parser)
        self.assertIs(p, parser)
        self.assertEqual(p.prog, "fred")
        self.assertTrue(p.epilog.endswith("good work"))

    def test_CommandFailure(self):
        ex = cli.CommandFailure("goob", "hey, don't do that!", 3)
        self.assertEqual(ex.cmd, "goob")
        self.assertEqual(ex.stat, 3)
        self.assertIsNone(ex.cause)
        self.assertEqual(str(ex), "hey, don't do that!")

        cause = ValueError("bad value")
        ex = cli.CommandFailure("goob", None, cause=cause)
        self.assertEqual(ex.stat, 1)
        self.assertIs(ex.cause, cause)
        self.assertEqual(str(ex), "bad value")

    def test_within(self):
        ex = cli.CommandFailure(None, "it broke").within("import")
        self.assertEqual(ex.cmd, "import")
        self.assertEqual(ex.within("package").cmd, "package import")
        self.assertEqual(ex.within("package import").cmd, "package import")

    def test_command_config(self):
        config = { "tmp_dir": "/tmp", "dbio": { "factory": "inmem" },
                   "cmd": { "import": { "dbio": { "factory": "fsbased" } } } }
        out = cli.command_config(config, "import")
        self.assertEqual(out, { "tmp_dir": "/tmp", "dbio": { "factory": "fsbased" } })
        self.assertEqual(config["dbio"], { "factory": "inmem" })

        self.assertEqual(cli.command_config(config, "export"),
                         { "tmp_dir": "/tmp", "dbio": { "factory": "inmem" } })
        config = { "tmp_dir": "/tmp" }
        self.assertIs(cli.command_config(config, "import"), config)

class TestCLISuite(test.TestCase):

    def resetLogfile(self):
        rootlog = logging.getLogger()
        if cfgmod._log_handler:
            rootlog.removeHandler(cfgmod._log_handler)
            cfgmod._log_handler.close()
            cfgmod._log_handler = None

    def setUp(self):
        self.suite = cli.CLISuite("sysadm")
        self.cmd = make_cmd("go")
        self.suite.load_subcommand(self.cmd)

    def tearDown(self):
        self.resetLogfile()

    def test_load_bad(self):
        with self.assertRaises(StateException):
            self.suite.load_subcommand(SimpleNamespace(default_name="nope", help="nope"))

    def test_execute(self):
        out = self.suite.execute(["-q", "-w", tmpdir.name, "go", "there"], {})
        self.assertEqual(out, "done")
        self.assertEqual(len(self.cmd.calls), 1)
        args, config, log = self.cmd.calls[0]
        self.assertEqual(args.thing, "there")
        self.assertEqual(config['working_dir'], tmpdir.name)
        self.assertTrue(os.path.isfile(os.path.join(tmpdir.name, "sysadm.log")))

    def test_execute_cmd_config(self):
        config = { "tmp_dir": "/tmp", "cmd": { "go": { "tmp_dir": "/var/tmp", "mine": True } } }
        self.suite.execute(["-q", "-w", tmpdir.name, "go", "there"], config)
        args, config, log = self.cmd.calls[0]
        self.assertEqual(config['tmp_dir'], "/var/tmp")
        self.assertTrue(config['mine'])
        self.assertNotIn("cmd", config)

    def test_execute_failure(self):
        suite = cli.CLISuite("sysadm")
        suite.load_subcommand(make_cmd("fail", failure=cli.CommandFailure(None, "it broke", 4)))
        with self.assertRaises(cli.CommandFailure) as cm:
            suite.execute(["-q", "-w", tmpdir.name, "fail", "now"], {})
        self.assertEqual(cm.exception.cmd, "fail")
        self.assertEqual(cm.exception.stat, 4)

    def test_missing_command(self):
        with self.assertRaises(cli.CommandFailure) as cm:
            self.suite.execute(["-q", "-w", tmpdir.name], {})
        self.assertEqual(cm.exception.stat, 2)

    def test_config_error(self):
        suite = cli.CLISuite("sysadm")
        suite.load_subcommand(make_cmd("conf", failure=cfgmod.ConfigurationException("no db")))
        with self.assertRaises(cli.CommandFailure) as cm:
            suite.execute(["-q", "-w", tmpdir.name, "conf", "x"], {})
        self.assertEqual(cm.exception.cmd, "conf")
        self.assertEqual(cm.exception.stat, 6)
        self.assertIn("no db", str(cm.exception))

    def test_bad_workdir(self):
        with self.assertRaises(cli.CommandFailure) as cm:
            self.suite.execute(["-q", "-w", os.path.join(tmpdir.name, "nonexistent"), "go", "x"], {})
        self.assertEqual(cm.exception.stat, 2)

class TestCommandSuite(test.TestCase):

    def test_subsuite(self):
        suite = cli.CLISuite("sysadm")
        inner = make_cmd("inner")

        def load_into(subparser, as_cmd=None):
            out = cli.CommandSuite(as_cmd or "outer", subparser)
            out.load_subcommand(inner)
            return out
        suite.load_subcommand(SimpleNamespace(default_name="outer", help="outer", description="outer",
                                              load_into=load_into))

        args = suite.parse_args(["outer", "inner", "thing1"])
        self.assertEqual(args.cmd, "outer")
        self.assertEqual(args.outer_subcmd, "inner")
        try:
            out = suite.execute(["-q", "-w", tmpdir.name, "outer", "inner", "thing1"], {})
        finally:
            rootlog = logging.getLogger()
            if cfgmod._log_handler:
                rootlog.removeHandler(cfgmod._log_handler)
                cfgmod._log_handler.close()
                cfgmod._log_handler = None
        self.assertEqual(out, "done")
        self.assertEqual(inner.calls[0][0].thing, "thing1")


if __name__ == '__main__':
    test.main()
