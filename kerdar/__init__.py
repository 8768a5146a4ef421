"""Kerdar - workflow graph engine.

Editable workflow graphs with undo/redo, upstream schema resolution for
expression editing, and side-effect-free simulation of data flow.
"""

__version__ = "0.1.0"
