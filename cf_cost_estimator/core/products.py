"""
Per-product usage aggregators.

Each aggregator consumes the raw counter groups for one product, sums them
into buckets, prices every bucket through its PricingRule and returns a
ProductUsage. Aggregators are pure: empty or partial input yields
zero-valued metrics, never an error, and no aggregator reads another's output.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .metrics import (
    ProductUsage,
    UsageMetric,
    build_metric,
    build_product_usage,
    bytes_to_gb,
    get_field,
    get_label,
    max_field,
    sum_field,
)
from .period import days_in_month
from .pricing import PRODUCT_NAMES, PricingRule, ProductPricing

logger = logging.getLogger(__name__)

CounterGroups = Optional[Sequence[Mapping[str, Any]]]

R2_CLASS_A_OPERATIONS = frozenset({
    "ListBuckets",
    "PutBucket",
    "ListObjects",
    "PutObject",
    "CopyObject",
    "CompleteMultipartUpload",
    "CreateMultipartUpload",
    "ListMultipartUploads",
    "UploadPart",
    "UploadPartCopy",
    "ListParts",
    "PutBucketEncryption",
    "PutBucketCors",
    "PutBucketLifecycleConfiguration",
})

R2_CLASS_B_OPERATIONS = frozenset({
    "HeadBucket",
    "HeadObject",
    "GetObject",
    "UsageSummary",
    "GetBucketEncryption",
    "GetBucketLocation",
    "GetBucketCors",
    "GetBucketLifecycleConfiguration",
    "DeleteObject",
    "DeleteBucket",
    "AbortMultipartUpload",
})

Predicate = Callable[[str], bool]


def _contains_any(*needles: str) -> Predicate:
    def predicate(label: str) -> bool:
        label = label.lower()
        return any(needle in label for needle in needles)
    return predicate


def _member_of(names: frozenset) -> Predicate:
    return lambda label: label in names


# Evaluated in order; the first matching predicate wins
KV_BUCKET_RULES: Tuple[Tuple[Predicate, str], ...] = (
    (_contains_any("read", "get"), "reads"),
    (_contains_any("write", "put"), "writes"),
    (_contains_any("delete"), "deletes"),
    (_contains_any("list"), "lists"),
)

R2_BUCKET_RULES: Tuple[Tuple[Predicate, str], ...] = (
    (_member_of(R2_CLASS_A_OPERATIONS), "class_a"),
    (_member_of(R2_CLASS_B_OPERATIONS), "class_b"),
)


@dataclass
class Classification:
    """Per-bucket request totals plus the requests no rule matched."""
    totals: Dict[str, float]
    unclassified: float = 0
    unclassified_labels: List[str] = field(default_factory=list)


def classify_operations(
    groups: CounterGroups,
    rules: Sequence[Tuple[Predicate, str]],
) -> Classification:
    """Sum operation requests into buckets by their action-type label.

    Args:
        groups: Operation counter groups with ``dimensions.actionType`` and
            ``sum.requests``
        rules: Ordered ``(predicate, bucket)`` pairs; the first match wins

    Returns:
        Classification with a total for every bucket (zero when unused) and
        the unclassified request count
    """
    result = Classification(totals={bucket: 0 for _, bucket in rules})
    for group in groups or ():
        label = get_label(group, "dimensions", "actionType")
        requests = get_field(group, "sum", "requests")
        for predicate, bucket in rules:
            if predicate(label):
                result.totals[bucket] += requests
                break
        else:
            result.unclassified += requests
            if label not in result.unclassified_labels:
                result.unclassified_labels.append(label)
    return result


def classify_kv_operations(groups: CounterGroups) -> Classification:
    return classify_operations(groups, KV_BUCKET_RULES)


def classify_r2_operations(groups: CounterGroups) -> Classification:
    return classify_operations(groups, R2_BUCKET_RULES)


def _report_unclassified(product: str, classification: Classification) -> int:
    if classification.unclassified:
        logger.warning(
            "%s: %s requests with unrecognised action types were not counted: %s",
            product,
            f"{classification.unclassified:,.0f}",
            ", ".join(label or "<empty>" for label in classification.unclassified_labels),
        )
    return int(classification.unclassified)


def price_metric(name: str, current: float, unit: str, rule: PricingRule, days: int) -> UsageMetric:
    """Price one counter against its rule.

    The free limit is the rule's monthly allowance (daily allowances are
    scaled by ``days``) and the overage uses the rule's rate and unit size.
    """
    limit = rule.monthly_limit(days)
    return build_metric(name, current, limit, unit, rule.rate_label, rule.overage(current, limit))


def aggregate_r2(
    operations: CounterGroups,
    storage: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate R2 object storage usage.

    Operations are split into Class A and Class B by exact action-type
    membership. Storage is the largest reported payload size, in GiB.
    """
    days = days_in_month(now)
    classification = classify_r2_operations(operations)
    storage_gb = bytes_to_gb(max_field(storage, "max", "payloadSize"))

    metrics = [
        price_metric(
            "Class A Operations", classification.totals["class_a"], "requests",
            pricing.rule("class_a_operations"), days,
        ),
        price_metric(
            "Class B Operations", classification.totals["class_b"], "requests",
            pricing.rule("class_b_operations"), days,
        ),
        price_metric("Storage", storage_gb, "GB", pricing.rule("storage"), days),
    ]
    product = PRODUCT_NAMES["r2"]
    return build_product_usage(product, metrics, _report_unclassified(product, classification))


def aggregate_workers(
    invocations: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate Workers requests and estimated CPU time.

    CPU time is estimated as the median CPU time (microseconds) of each
    invocation group multiplied by its request count, reported in ms.
    """
    days = days_in_month(now)
    total_requests = 0
    total_cpu_us = 0.0
    for group in invocations or ():
        requests = get_field(group, "sum", "requests")
        total_requests += requests
        total_cpu_us += get_field(group, "quantiles", "cpuTimeP50") * requests

    return build_product_usage(PRODUCT_NAMES["workers"], [
        price_metric("Requests", total_requests, "requests", pricing.rule("requests"), days),
        price_metric("CPU Time (est.)", total_cpu_us / 1000, "ms", pricing.rule("cpu_ms"), days),
    ])


def aggregate_kv(
    operations: CounterGroups,
    storage: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate Workers KV operations and storage.

    Operations are bucketed by case-insensitive substring match on their
    action type (see KV_BUCKET_RULES); unmatched operations are reported
    through ``unclassified_requests`` and not billed.
    """
    days = days_in_month(now)
    classification = classify_kv_operations(operations)
    storage_gb = bytes_to_gb(max_field(storage, "max", "byteCount"))

    metrics = [
        price_metric(name, classification.totals[bucket], "requests", pricing.rule(bucket), days)
        for bucket, name in (("reads", "Reads"), ("writes", "Writes"), ("deletes", "Deletes"), ("lists", "Lists"))
    ]
    metrics.append(price_metric("Storage", storage_gb, "GB", pricing.rule("storage"), days))

    product = PRODUCT_NAMES["kv"]
    return build_product_usage(product, metrics, _report_unclassified(product, classification))


def aggregate_d1(
    analytics: CounterGroups,
    storage: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate D1 rows read/written and storage, summed across all databases."""
    days = days_in_month(now)
    rows_read = sum_field(analytics, "sum", "rowsRead")
    rows_written = sum_field(analytics, "sum", "rowsWritten")
    storage_gb = bytes_to_gb(sum_field(storage, "max", "databaseSizeBytes"))

    return build_product_usage(PRODUCT_NAMES["d1"], [
        price_metric("Rows Read", rows_read, "rows", pricing.rule("rows_read"), days),
        price_metric("Rows Written", rows_written, "rows", pricing.rule("rows_written"), days),
        price_metric("Storage", storage_gb, "GB", pricing.rule("storage"), days),
    ])


def aggregate_images(
    requests: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate Images delivery requests.

    The default rule has no free allowance, so every request is billed.
    """
    total_requests = sum_field(requests, "sum", "requests")
    return build_product_usage(PRODUCT_NAMES["images"], [
        price_metric("Requests", total_requests, "requests", pricing.rule("requests"), days_in_month(now)),
    ])


def aggregate_ai(
    inference: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate Workers AI neuron usage.

    The free allowance is daily, so the monthly threshold is recomputed on
    every call from the number of days in the current UTC month.
    """
    total_neurons = sum_field(inference, "sum", "totalNeurons")
    return build_product_usage(PRODUCT_NAMES["ai"], [
        price_metric("Neurons", total_neurons, "neurons", pricing.rule("neurons"), days_in_month(now)),
    ])


def aggregate_vectorize(
    queries: CounterGroups,
    storage: CounterGroups,
    pricing: ProductPricing,
    now: Optional[datetime] = None,
) -> ProductUsage:
    """Aggregate Vectorize queried and stored vector dimensions."""
    days = days_in_month(now)
    queried = sum_field(queries, "sum", "queriedVectorDimensions")
    stored = sum_field(storage, "max", "storedVectorDimensions")

    return build_product_usage(PRODUCT_NAMES["vectorize"], [
        price_metric("Queried Dimensions", queried, "dimensions", pricing.rule("queried_dimensions"), days),
        price_metric("Stored Dimensions", stored, "dimensions", pricing.rule("stored_dimensions"), days),
    ])
