"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

retrieval_counter = Counter("piece_retrievals_total",
                            "Total number of retrieval requests processed")
retrieval_errors_total = Counter(
    "piece_retrieval_errors_total", "Total number of retrieval errors", ["error"])
retrieval_latency_seconds = Histogram(
    "piece_retrieval_latency_seconds", "Retrieval latency in seconds", buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0])
query_embedding_latency_seconds = Histogram(
    "piece_query_embedding_latency_seconds", "Query embedding latency in seconds", buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0])
stale_records_dropped_total = Counter(
    "piece_stale_records_dropped_total",
    "Embedding records skipped because their fragment or piece no longer exists",
    ["kind"])
