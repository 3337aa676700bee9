"""Firehose indexer for the IndieWeb feed."""
