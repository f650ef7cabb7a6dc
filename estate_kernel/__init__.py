"""
Estate Kernel - audit and period-lock core of the property import system.

- Append-only audit journal with a tamper-evident hash chain
- Per business unit monthly period locks with temporary reopening
- Injectable clock, typed exceptions and structured logging
"""

__version__ = "0.1.0"
