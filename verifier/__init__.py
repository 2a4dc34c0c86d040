"""Employee verification backend: ingestion, in-memory store, matching, reporting.

Uploaded spreadsheets flow through ingest -> store -> matching -> store ->
reporting; the FastAPI app in ``verifier.api`` drives each step.
"""
