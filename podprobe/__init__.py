"""Diagnostic HTTP service for probing how a platform schedules a workload."""

__version__ = '0.1.0'
