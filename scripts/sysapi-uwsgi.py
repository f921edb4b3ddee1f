"""
the uWSGI script for launching the data platform system API web service.

This script launches the web service using uwsgi.  For example, one can
launch the service with the following command:

  uwsgi --plugin python3 --http-socket :9090 --wsgi-file sysapi-uwsgi.py     \
        --set-ph dataplat_config_file=sysapi_conf.yml --set-ph dataplat_working_dir=_test

The configuration data can be provided to this script via a file or URL (as illustrated above).
See the documentation for dataplat.sysapi.wsgi for the configuration parameters supported by this
service.

This script also pays attention to the following environment variables:

   DATAPLAT_MONGODB_URL   the URL of the MongoDB database to use when the database type is
                            "mongo"; this overrides the ``dbio.db_url`` configuration parameter.
"""
import os, sys, logging

import uwsgi

import dataplat.sysapi
from dataplat.base import config
from dataplat.sysapi.dbio import MongoDBClientFactory, InMemoryDBClientFactory, FSBasedDBClientFactory
from dataplat.sysapi import wsgi

def _dec(obj):
    # decode an object if it is not None
    return obj.decode() if isinstance(obj, (bytes, bytearray)) else obj

DEF_DB_TYPE="fsbased"

confsrc = _dec(uwsgi.opt.get("dataplat_config_file"))
if not confsrc:
    raise config.ConfigurationException("sysapi: configuration file not provided")
cfg = config.resolve_configuration(confsrc)

workdir = _dec(uwsgi.opt.get("dataplat_working_dir"))
if workdir:
    cfg['working_dir'] = workdir
if uwsgi.opt.get("dataplat_log_file"):
    cfg["logfile"] = _dec(uwsgi.opt.get("dataplat_log_file"))

config.configure_log(config=cfg)

# setup the database backend
dbcfg = cfg.get("dbio", {})
dbtype = _dec(uwsgi.opt.get("dataplat_db_type")) or dbcfg.get("factory") or DEF_DB_TYPE

if dbtype == "fsbased":
    wdir = cfg.get('working_dir', '.')
    dbdir = dbcfg.get('db_root_dir')
    if not dbdir:
        dbdir = os.path.join(wdir, "dbfiles")
    elif not os.path.isabs(dbdir):
        dbdir = os.path.join(wdir, dbdir)
    if not os.path.exists(dbdir):
        os.makedirs(dbdir)
    factory = FSBasedDBClientFactory(dbcfg, dbdir)

elif dbtype == "mongo":
    factory = MongoDBClientFactory(dbcfg, os.environ.get("DATAPLAT_MONGODB_URL") or dbcfg.get("db_url"))

elif dbtype == "inmem":
    factory = InMemoryDBClientFactory(dbcfg)

else:
    raise RuntimeError("Unsupported database type: "+dbtype)

application = wsgi.app(cfg, factory)

msg = "System API service (v%s) ready with %s backend" % (dataplat.sysapi.__version__, dbtype)
print(msg)
logging.info(msg)
