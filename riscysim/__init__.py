"""Cycle-level simulator of a pipelined RV32I subset with branch prediction and a data cache."""

__version__ = "0.1.0"