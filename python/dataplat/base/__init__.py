"""
Base classes and utilities shared by all of the dataplat subsystems.

This package provides the root exception class, :py:class:`DataPlatException`, and a mixin,
:py:class:`SystemInfoMixin`, that lets a class identify the system and subsystem it belongs to
(which is useful for log and error messages).  The :py:mod:`~dataplat.base.config` module provides
the common configuration and logging set-up functions.
"""
__all__ = ["DataPlatException", "StateException", "SystemInfoMixin", "config"]

class SystemInfoMixin(object):
    """
    a mixin that provides information about the system and subsystem a class is a part of
    """

    def __init__(self, sysname: str, sysabbrev: str, subsysname: str, subsysabbrev: str,
                 version: str):
        self._sysname = sysname
        self._sysabbrev = sysabbrev
        self._subsysname = subsysname
        self._subsysabbrev = subsysabbrev
        self._sysver = version

    @property
    def system_name(self):
        return self._sysname

    @property
    def system_abbrev(self):
        return self._sysabbrev

    @property
    def subsystem_name(self):
        return self._subsysname

    @property
    def subsystem_abbrev(self):
        return self._subsysabbrev

    @property
    def system_version(self):
        return self._sysver

    def getSysLogger(self):
        """
        return the Logger named after the system and subsystem abbreviations
        """
        import logging
        log = logging.getLogger(self.system_abbrev)
        if self.subsystem_abbrev:
            log = log.getChild(self.subsystem_abbrev)
        return log

class DataPlatException(Exception):
    """
    a base class for exceptions raised by dataplat components.

    Beyond a message, the exception can record the exception that caused it (``cause``) and the
    system component where the error originated (``sys``, usually a :py:class:`SystemInfoMixin`).
    """

    def __init__(self, message: str=None, cause: Exception=None, sys: SystemInfoMixin=None):
        """
        create the exception.
        :param str     message:  a description of the problem; if not provided, a message is
                                 derived from ``cause``
        :param Exception cause:  the underlying exception that triggered this one, if any
        :param          sys:     the system component raising the exception
        """
        if not message:
            if cause:
                message = str(cause)
            else:
                message = "Unknown dataplat system error"
        super(DataPlatException, self).__init__(message)
        self.cause = cause
        self.system = sys

    @property
    def message(self):
        return self.args[0]

class StateException(DataPlatException):
    """
    an exception indicating that an operation was attempted while a component or resource was in
    a state that does not allow it
    """
    pass

from . import config
