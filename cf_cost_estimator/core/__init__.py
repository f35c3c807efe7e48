"""
Core modules for Cloudflare Cost Estimator.

This package contains the usage aggregation and cost estimation engine:
metric building, overage formulas, pricing policy, per-product aggregators
and the account-level fan-out.
"""
