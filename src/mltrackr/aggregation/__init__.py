"""Aggregation module for per-user experiment statistics.

Reads the store and produces summaries; never mutates experiments.
"""
