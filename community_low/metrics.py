"""Prometheus metrics for the community lowest-price service."""

from prometheus_client import Counter, Info

# Application info
app_info = Info("community_low", "Community lowest-price service info")
app_info.info({"version": "0.1.0", "name": "community-low"})

# Ingestion metrics
reports_total = Counter(
    "community_low_reports_total",
    "Reported prices by ingestion outcome",
    ["outcome"],  # accepted, rejected, skipped, failed
)

lowest_price_updates_total = Counter(
    "community_low_lowest_price_updates_total",
    "Accepted lowest-price transitions",
    ["trust_level"],
)

# Cache metrics
cache_lookups_total = Counter(
    "community_low_cache_lookups_total",
    "Read-through cache lookups",
    ["view", "result"],  # view: lowest, snapshot; result: hit, miss, error
)

cache_invalidations_total = Counter(
    "community_low_cache_invalidations_total",
    "Cache invalidations after accepted updates",
    ["status"],
)

# Client metrics
report_batches_total = Counter(
    "community_low_report_batches_total",
    "Report batches flushed by the client uploader",
    ["status"],  # sent, failed, dropped
)
