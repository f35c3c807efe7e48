"""
Analytics source for Cloudflare Cost Estimator.

GraphQL transport and per-product fetchers that feed the core aggregators.
"""
