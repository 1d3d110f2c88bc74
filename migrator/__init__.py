"""
code-migrator: parallel batch conversion of database code and scripts.
"""

__version__ = "1.0.0"
