"""
qtbuildkit - build Qt sources as ordinary native translation units.

Generates configuration headers, bootstraps host tools (moc-style code
generators), runs them and compiles toolkit modules into static libraries,
sharing a single fingerprinted build root between independent build units.
"""

__version__ = "0.1.0"
