"""
benchledger - Longitudinal Go benchmark records.

Turns ``go test -bench`` output into per-package YAML history, merges new
runs without touching hand-written notes, and renders delta reports.
"""

__version__ = "0.1.0"
