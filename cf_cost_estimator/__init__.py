"""
Cloudflare Cost Estimator.

Estimates the monthly Cloudflare bill from analytics usage counters.
"""

__version__ = "0.1.0"
