"""
estate_kernel.domain -- Pure value objects (clock, periods, journal DTOs).

ZERO I/O.
"""
