"""
Utilities for loading configuration data and setting up logging.

Configuration data is a (possibly nested) dictionary typically read from a YAML or JSON file.
Components accept their configuration as a plain ``Mapping`` and pull their parameters from it;
:py:func:`merge_config` is used to combine a component-specific configuration with a set of
defaults.
"""
import os, sys, json, logging
from collections.abc import Mapping
from copy import deepcopy
from urllib.parse import urlparse

import yaml, requests

from . import DataPlatException

__all__ = [ "ConfigurationException", "merge_config", "load_from_file", "resolve_configuration",
            "configure_log", "NORMAL", "global_logdir", "global_logfile" ]

# a log level between DEBUG and INFO; used for messages that explain what is happening
NORMAL = 15
logging.addLevelName(NORMAL, "NORMAL")

global_logdir = None
global_logfile = None
_log_handler = None

DEF_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

class ConfigurationException(DataPlatException):
    """
    an exception indicating a problem with the configuration data
    """
    pass

def merge_config(primary: Mapping, defconf: Mapping) -> Mapping:
    """
    merge the data from one configuration into another.  The values in ``primary`` override
    those in ``defconf``; where both have a dictionary value for the same key, the dictionaries
    are merged recursively.  ``defconf`` is updated in place and returned.
    """
    for key in primary:
        if key in defconf and isinstance(defconf[key], Mapping) and isinstance(primary[key], Mapping):
            merge_config(primary[key], defconf[key])
        else:
            defconf[key] = deepcopy(primary[key])
    return defconf

def load_from_file(configfile: str) -> Mapping:
    """
    read configuration data from a file.  Files with a ``.json`` extension are parsed as JSON;
    all others are parsed as YAML.

    :raise ConfigurationException:  if the file cannot be read or parsed
    """
    try:
        with open(configfile) as fd:
            if configfile.endswith('.json'):
                data = json.load(fd)
            else:
                data = yaml.safe_load(fd)
    except (OSError, ValueError, yaml.YAMLError) as ex:
        raise ConfigurationException("%s: Unable to load configuration: %s" % (configfile, str(ex)),
                                     cause=ex)
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationException("%s: configuration is not an object" % configfile)
    return data

def resolve_configuration(location: str, timeout: int=30) -> Mapping:
    """
    load configuration data from a location given either as a file path or an HTTP(S) URL.
    """
    if location.startswith("http://") or location.startswith("https://"):
        try:
            resp = requests.get(location, timeout=timeout)
            if resp.status_code >= 300:
                raise ConfigurationException("%s: failed to retrieve configuration: %s (%d)" %
                                             (location, resp.reason, resp.status_code))
            path = urlparse(location).path
            if path.endswith('.json'):
                data = resp.json()
            else:
                data = yaml.safe_load(resp.text)
        except requests.RequestException as ex:
            raise ConfigurationException("%s: Unable to retrieve configuration: %s" %
                                         (location, str(ex)), cause=ex)
        except (ValueError, yaml.YAMLError) as ex:
            raise ConfigurationException("%s: Unable to parse configuration: %s" %
                                         (location, str(ex)), cause=ex)
        if not isinstance(data, Mapping):
            raise ConfigurationException("%s: configuration is not an object" % location)
        return data

    if location.startswith("file:"):
        location = urlparse(location).path
    return load_from_file(location)

def configure_log(logfile: str=None, level: int=None, format: str=None, config: Mapping=None,
                  addstderr: bool=False):
    """
    set up logging to a file, attaching a handler to the root logger.  Parameters not given
    explicitly are taken from the configuration: ``logfile``, ``logdir``, ``loglevel``, and
    ``logformat``.  A relative log file path is interpreted relative to ``logdir`` (or, if that is
    not set, ``working_dir``).

    :param str  logfile:  the path to the file to write messages to
    :param int    level:  the minimum level of messages to record
    :param str   format:  the log message format
    :param dict  config:  configuration data to get default values from
    :param bool addstderr: if True, also send messages to standard error
    """
    global global_logdir, global_logfile, _log_handler
    if not config:
        config = {}

    if not logfile:
        logfile = config.get('logfile', 'dataplat.log')
    if not os.path.isabs(logfile):
        logdir = config.get('logdir', config.get('working_dir', os.getcwd()))
        logfile = os.path.join(logdir, logfile)
    global_logdir = os.path.dirname(logfile)
    global_logfile = logfile
    if global_logdir and not os.path.exists(global_logdir):
        os.makedirs(global_logdir)

    if level is None:
        level = config.get('loglevel', NORMAL)
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                raise ConfigurationException("loglevel: unrecognized level name: " +
                                             config.get('loglevel'))
    if not format:
        format = config.get('logformat', DEF_FORMAT)

    rootlog = logging.getLogger()
    if _log_handler:
        rootlog.removeHandler(_log_handler)
        _log_handler.close()
    _log_handler = logging.FileHandler(logfile)
    _log_handler.setLevel(level)
    _log_handler.setFormatter(logging.Formatter(format))
    rootlog.addHandler(_log_handler)
    if rootlog.level == logging.NOTSET or rootlog.level > level:
        rootlog.setLevel(level)

    if addstderr:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(format))
        rootlog.addHandler(handler)

    return rootlog
