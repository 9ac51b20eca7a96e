"""
stepwright: natural-language web test step execution engine.
"""

__version__ = "0.1.0"
