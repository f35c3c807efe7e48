"""
Configuration management and loading.

Handles Cloudflare credentials from environment variables and pricing
overrides from YAML.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..core.errors import ConfigurationError
from ..core.pricing import DEFAULT_PRICING, PricingPolicy

ACCOUNT_ID_ENV = "CLOUDFLARE_ACCOUNT_ID"
API_TOKEN_ENV = "CLOUDFLARE_API_TOKEN"


@dataclass(frozen=True)
class Credentials:
    """Cloudflare account identifier and API token."""
    account_id: Optional[str]
    api_token: Optional[str]

    @property
    def missing(self) -> list:
        missing = []
        if not self.account_id:
            missing.append(ACCOUNT_ID_ENV)
        if not self.api_token:
            missing.append(API_TOKEN_ENV)
        return missing

    def validate(self) -> "Credentials":
        """Ensure both values are present.

        Raises:
            ConfigurationError: Naming the missing environment variables
        """
        if self.missing:
            raise ConfigurationError(f"Missing {' or '.join(self.missing)}")
        return self


def load_credentials(environ: Optional[Mapping[str, str]] = None) -> Credentials:
    """Read credentials from the environment. Empty values count as missing."""
    environ = os.environ if environ is None else environ
    return Credentials(
        account_id=(environ.get(ACCOUNT_ID_ENV) or "").strip() or None,
        api_token=(environ.get(API_TOKEN_ENV) or "").strip() or None,
    )


def load_pricing_config(path: str, base: PricingPolicy = DEFAULT_PRICING) -> PricingPolicy:
    """Load and validate pricing overrides from a YAML file.

    Strict validation ensures no silent misconfigurations: unknown products,
    dimensions or keys are rejected rather than ignored. Fields that are not
    overridden keep their values from ``base``.

    Example::

        base_fee: 5
        products:
          r2:
            storage:
              free_limit: 20
              rate: 0.015

    Args:
        path: Path to YAML pricing file
        base: Pricing policy the overrides are applied to

    Returns:
        Validated PricingPolicy

    Raises:
        FileNotFoundError: If pricing file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ConfigurationError: If pricing configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Pricing config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in pricing file {path}: {e}")

    if not raw_config:
        raise ConfigurationError("Pricing file is empty")
    if not isinstance(raw_config, dict):
        raise ConfigurationError("Pricing file must contain a mapping")

    allowed_top_keys = {'base_fee', 'products'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ConfigurationError(f"Unknown pricing keys: {unknown_keys}")

    policy = base
    if 'base_fee' in raw_config:
        policy = policy.with_base_fee(_parse_amount(raw_config['base_fee'], "base_fee"))

    products_data = raw_config.get('products', {}) or {}
    if not isinstance(products_data, dict):
        raise ConfigurationError("'products' must be a dictionary")

    for product, rules_data in products_data.items():
        if product not in policy.products:
            raise ConfigurationError(f"Unknown product '{product}'")
        if not isinstance(rules_data, dict):
            raise ConfigurationError(f"Product '{product}' must be a dictionary")

        for rule_name, rule_data in rules_data.items():
            if rule_name not in policy.get_pricing(product).rules:
                raise ConfigurationError(f"Unknown pricing dimension '{rule_name}' for product '{product}'")
            if not isinstance(rule_data, dict):
                raise ConfigurationError(f"products.{product}.{rule_name} must be a dictionary")
            changes = _parse_rule_overrides(rule_data, f"products.{product}.{rule_name}")
            policy = policy.with_rule(product, rule_name, **changes)

    return policy


def _parse_rule_overrides(data: Dict[str, Any], path: str) -> Dict[str, Any]:
    """Parse and validate overrides for a single pricing rule.

    Args:
        data: Rule override data
        path: Path for error messages

    Returns:
        Field changes to apply to the rule

    Raises:
        ConfigurationError: If the overrides are invalid
    """
    allowed_keys = {'free_limit', 'rate', 'unit_size', 'rate_unit', 'per_day'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ConfigurationError(f"Unknown keys in {path}: {unknown_keys}")

    changes: Dict[str, Any] = {}
    for key in ('free_limit', 'rate'):
        if key in data:
            changes[key] = _parse_amount(data[key], f"{path}.{key}")

    if 'unit_size' in data:
        unit_size = data['unit_size']
        if isinstance(unit_size, bool) or not isinstance(unit_size, int) or unit_size <= 0:
            raise ConfigurationError(f"'unit_size' in {path} must be a positive integer")
        changes['unit_size'] = unit_size

    if 'rate_unit' in data:
        if not isinstance(data['rate_unit'], str) or not data['rate_unit'].strip():
            raise ConfigurationError(f"'rate_unit' in {path} must be a non-empty string")
        changes['rate_unit'] = data['rate_unit']

    if 'per_day' in data:
        if not isinstance(data['per_day'], bool):
            raise ConfigurationError(f"'per_day' in {path} must be true or false")
        changes['per_day'] = data['per_day']

    return changes


def _parse_amount(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigurationError(f"'{path}' must be a number >= 0")
    return float(value)
