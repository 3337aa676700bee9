from __future__ import annotations

from prometheus_client import Counter, Gauge


events_processed_total = Counter(
    "indexer_events_processed_total",
    "Total firehose commit events processed",
)

posts_indexed_total = Counter(
    "indexer_posts_indexed_total",
    "Posts staged for insertion",
    ["table"],
)

posts_deleted_total = Counter(
    "indexer_posts_deleted_total",
    "Post deletions applied",
    ["table"],
)

classifier_decisions_total = Counter(
    "indexer_classifier_decisions_total",
    "Classifier decisions for posts with links and a resolved handle",
    ["decision"],
)

handle_resolution_failures_total = Counter(
    "indexer_handle_resolution_failures_total",
    "DID to handle resolutions that returned no handle",
)

mapping_reloads_total = Counter(
    "indexer_mapping_reloads_total",
    "Handle mapping reload attempts",
    ["outcome"],
)

mapped_handles = Gauge(
    "indexer_mapped_handles",
    "Handles currently present in the mapping table",
)

cursor_saves_total = Counter(
    "indexer_cursor_saves_total",
    "Successful cursor checkpoints",
)

cursor_save_errors_total = Counter(
    "indexer_cursor_save_errors_total",
    "Failed cursor checkpoints",
)

firehose_cursor = Gauge(
    "firehose_cursor",
    "Latest firehose cursor sequence",
)

events_per_second = Gauge(
    "firehose_events_per_second",
    "Current firehose commit event rate (events/sec)",
)
