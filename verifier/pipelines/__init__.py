"""Ingestion, normalization, matching and reporting pipelines.

Each step is callable on its own so it can be driven from the API or from a
script against any ``RecordStore``.
"""
