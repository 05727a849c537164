"""Prometheus metrics for the price list ingestion service."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("price_ingest", "Price list ingestion application info")
app_info.info({"version": "0.1.0", "name": "price-ingest"})

# Message metrics
messages_received_total = Counter(
    "messages_received_total",
    "Total number of inbound messages accepted for processing",
)

messages_duplicate_total = Counter(
    "messages_duplicate_total",
    "Inbound messages skipped because their external id was already seen",
)

messages_finalized_total = Counter(
    "messages_finalized_total",
    "Messages that reached a terminal status",
    ["status", "reason"],
)

message_processing_seconds = Histogram(
    "message_processing_seconds",
    "Time spent taking one message to a terminal status",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

# Line item metrics
items_processed_total = Counter(
    "items_processed_total",
    "Extracted line items by outcome",
    ["outcome"],
)

# Text intelligence metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "LLM calls by operation and status",
    ["operation", "status"],
)

catalog_matches_total = Counter(
    "catalog_matches_total",
    "Catalog matcher decisions",
    ["decision"],  # below_threshold, rejected, confirmed
)
