import logging
import unittest as test

from dataplat.utils import blab
from dataplat.utils.logging import BLAB

class TestBlab(test.TestCase):

    def test_level(self):
        self.assertLess(BLAB, logging.DEBUG)
        self.assertEqual(logging.getLevelName(BLAB), "BLAB")

    def test_blab(self):
        log = logging.getLogger("dataplat.test.blab")
        log.setLevel(BLAB)
        with self.assertLogs(log, BLAB) as cm:
            blab(log, "read record file %s", "1.json")
        self.assertEqual(cm.output, ["BLAB:dataplat.test.blab:read record file 1.json"])

        log.setLevel(logging.DEBUG)
        with self.assertLogs(log, logging.DEBUG) as cm:
            blab(log, "not shown")
            log.debug("shown")
        self.assertEqual(cm.output, ["DEBUG:dataplat.test.blab:shown"])


if __name__ == '__main__':
    test.main()
