"""
An implementation of the dbio interface that persists data to files on disk.

Each collection is a directory below the database root; each record is stored as a JSON file
named after its identifier.  A record file is replaced as a whole on each write (by renaming a
fully written temporary file over it), so a reader never sees a partially written record.
"""
import os, re, json, logging, tempfile, threading
from pathlib import Path
from copy import deepcopy
from collections import OrderedDict
from collections.abc import Mapping, MutableMapping
from typing import Iterator
from . import base

from dataplat.utils import blab
from dataplat.base.config import ConfigurationException, merge_config

_unsafe_chars = re.compile(r'[^\w\.\-:#]')
_seq_lock = threading.Lock()
log = logging.getLogger("dataplat.sysapi.dbio.fsbased")

def load_record(recfile: str):
    """
    read a record from its file.  Mapping properties keep the order they have in the file.
    :raises ValueError:  if the file content is not valid JSON
    """
    with open(recfile, encoding='utf-8') as fd:
        out = json.load(fd, object_pairs_hook=OrderedDict)
    blab(log, "read record file %s", recfile)
    return out

def save_record(data, recfile: str):
    """
    write a record to its file, replacing any previous version
    """
    recdir = os.path.dirname(recfile) or '.'
    fd, tmpfile = tempfile.mkstemp(suffix=".tmp", prefix=".", dir=recdir)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as out:
            json.dump(data, out, indent=2)
        os.replace(tmpfile, recfile)
    except BaseException:
        if os.path.exists(tmpfile):
            os.remove(tmpfile)
        raise
    blab(log, "wrote record file %s", recfile)

class FSBasedDBClient(base.DBClient):
    """
    an implementation of DBClient in which the data is persisted to flat files on disk.
    """

    def __init__(self, dbroot: str, config: Mapping, tenant: str = base.DEF_TENANT):
        self._root = Path(dbroot)
        if not self._root.is_dir():
            raise base.DBIOException("FSBasedDBClient: %s: does not exist as a directory" % dbroot)
        super(FSBasedDBClient, self).__init__(config, tenant, self._root)

    def _ensure_collection(self, collname):
        os.makedirs(self._root / collname, exist_ok=True)

    def _recpath(self, collname, id) -> Path:
        return self._root / collname / (_unsafe_chars.sub('_', str(id))+".json")

    def _read_rec(self, collname, id):
        recpath = self._recpath(collname, id)
        if not recpath.is_file():
            return None
        try:
            return load_record(str(recpath))
        except ValueError as ex:
            raise base.DBIOException("%s: Unable to read DB record as JSON: %s" % (id, str(ex)))
        except OSError as ex:
            raise base.DBIOException("%s: Unable to read DB record: %s" % (id, str(ex)))

    def _write_rec(self, collname, id, data):
        self._ensure_collection(collname)
        recpath = self._recpath(collname, id)
        exists = recpath.exists()
        try:
            save_record(data, str(recpath))
        except (OSError, TypeError, ValueError) as ex:
            raise base.DBIOException("%s: Unable to write DB record: %s" % (id, str(ex)))
        return not exists

    def _next_recnum(self, slot):
        with _seq_lock:
            num = self._read_rec(base.NEXTNUM_COLL, slot) or 0
            num += 1
            self._write_rec(base.NEXTNUM_COLL, slot, num)
        return num

    def _get_from_coll(self, collname, id) -> MutableMapping:
        return self._read_rec(collname, id)

    def _select_from_coll(self, collname, **constraints) -> Iterator[MutableMapping]:
        collpath = self._root / collname
        if not collpath.is_dir():
            return
        for root, dirs, files in os.walk(collpath):
            for fn in sorted(files):
                if not fn.endswith(".json") or fn.startswith("."):
                    continue
                try:
                    rec = load_record(os.path.join(root, fn))
                except ValueError:
                    # skip over corrupted records
                    continue

                cancel = False
                for ck, cv in constraints.items():
                    if rec.get(ck) != cv:
                        cancel = True
                        break
                if cancel:
                    continue
                yield rec

    def _delete_from(self, collname, id):
        recpath = self._recpath(collname, id)
        if recpath.is_file():
            recpath.unlink()
            return True
        return False

    def _upsert(self, coll: str, recdata: Mapping) -> bool:
        try:
            return self._write_rec(coll, recdata['id'], recdata)
        except KeyError:
            raise base.DBIOException("_upsert(): record is missing 'id' property")


class FSBasedDBClientFactory(base.DBClientFactory):
    """
    a DBClientFactory that creates FSBasedDBClient instances in which records are stored in JSON
    files on disk under a specified directory.

    This implementation supports the following configuration parameter:

    ``db_root_dir``
         the root directory where the database's record files will be stored.  If not specified,
         this value must be provided to the constructor directly.
    """

    def __init__(self, config: Mapping, dbroot: str = None):
        """
        Create the factory with the given configuration.

        :param dict config:  the configuration parameters used to configure clients
        :param str  dbroot:  the root directory to use to store database record files below; if
                             not provided, the value of the ``db_root_dir`` configuration
                             parameter will be used.
        :raise ConfigurationException:  if the database's root directory is provided neither as an
                             argument nor a configuration parameter.
        :raise DBIOException:  if the specified root directory does not exist
        """
        super(FSBasedDBClientFactory, self).__init__(config)
        if not dbroot:
            dbroot = self.cfg.get("db_root_dir")
            if not dbroot:
                raise ConfigurationException("Missing required configuration parameter: db_root_dir")
        if not os.path.isdir(dbroot):
            raise base.DBIOException("FSBasedDBClientFactory: %s: does not exist as a directory" % dbroot)
        self._dbroot = dbroot

    def create_client(self, tenant: str = base.DEF_TENANT, config: Mapping = {}):
        cfg = merge_config(config, deepcopy(self._cfg))
        return FSBasedDBClient(self._dbroot, cfg, tenant)
