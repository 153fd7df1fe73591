"""Prometheus counters for the resolution core."""

from prometheus_client import Counter

GATEWAY_REQUESTS_TOTAL = Counter(
    "evermark_gateway_requests_total",
    "IPFS gateway requests by gateway and outcome",
    ["gateway", "outcome"],
)

TIER_RESOLUTIONS_TOTAL = Counter(
    "evermark_tier_resolutions_total",
    "Which data source tier served a request",
    ["operation", "tier"],
)

BATCH_ITEMS_TOTAL = Counter(
    "evermark_batch_items_total",
    "Batch fetch items by outcome",
    ["outcome"],
)
