"""Unattended crypto payment receipt printer agent."""

__version__ = '1.0.0'
