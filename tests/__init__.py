"""
Test suite for the odds ingestion engine.

Covers the provider client, event transformer, odds consolidator,
lifecycle gate, SQLite sinks, chunked writer, pass orchestration and CLI.
"""
