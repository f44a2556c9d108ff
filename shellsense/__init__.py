"""
ShellSense
==========

Command suggestions for a terminal session, driven by a language model.
"""

__version__ = "0.1.0"
