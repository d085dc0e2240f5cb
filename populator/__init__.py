"""
Template placeholder population engine.

Fills ``<...>`` placeholders in spreadsheet templates with confirmed,
categorized data items while leaving every other cell untouched.
"""

__version__ = "0.3.0"
