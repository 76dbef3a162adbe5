"""netsweep: authorized IPv4 host discovery with MAC vendor enrichment."""

__version__ = "1.0.0"
