"""
Utilities for creating web services.

This package is organized into the following modules:

``utils``
    General utilities that can be used potentially in any web service framework.  This includes
    functions for interpreting the ``Accept`` HTTP header.
``rest``
    a simple framework for creating strict REST services
"""
