"""
pykati evaluates makefile variables and recipes and writes the result as a
Ninja build plan.
"""

__version__ = '0.1.0'
