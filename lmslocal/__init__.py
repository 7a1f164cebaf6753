"""LMSLocal - Last Man Standing football prediction competitions."""

__version__ = "1.0.0"
