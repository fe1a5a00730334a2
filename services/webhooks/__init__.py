"""
Webhook ingestion: provider adapters, signature verification and the
ingestion pipeline.
"""
