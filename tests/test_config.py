"""
Unit tests for configuration loading and validation.

Tests credential lookup and strict validation of pricing overrides.
"""

import os
import tempfile

import pytest
import yaml

from cf_cost_estimator.config.loader import (
    ACCOUNT_ID_ENV,
    API_TOKEN_ENV,
    Credentials,
    load_credentials,
    load_pricing_config,
)
from cf_cost_estimator.core.errors import ConfigurationError
from cf_cost_estimator.core.pricing import DEFAULT_PRICING


class TestCredentials:
    """Test credential loading from the environment."""

    def test_both_present(self):
        credentials = load_credentials({ACCOUNT_ID_ENV: "acc-123", API_TOKEN_ENV: "token"})
        assert credentials == Credentials(account_id="acc-123", api_token="token")
        assert credentials.missing == []
        assert credentials.validate() is credentials

    def test_values_are_stripped(self):
        credentials = load_credentials({ACCOUNT_ID_ENV: "  acc-123\n", API_TOKEN_ENV: " token "})
        assert credentials.account_id == "acc-123"
        assert credentials.api_token == "token"

    def test_empty_values_count_as_missing(self):
        credentials = load_credentials({ACCOUNT_ID_ENV: "", API_TOKEN_ENV: "   "})
        assert credentials.account_id is None
        assert credentials.api_token is None
        assert credentials.missing == [ACCOUNT_ID_ENV, API_TOKEN_ENV]

    def test_validate_names_missing_variable(self):
        credentials = load_credentials({ACCOUNT_ID_ENV: "acc-123"})
        with pytest.raises(ConfigurationError, match="Missing CLOUDFLARE_API_TOKEN"):
            credentials.validate()

    def test_validate_names_both_missing(self):
        with pytest.raises(ConfigurationError, match="CLOUDFLARE_ACCOUNT_ID or CLOUDFLARE_API_TOKEN"):
            load_credentials({}).validate()

    def test_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv(ACCOUNT_ID_ENV, "from-env")
        monkeypatch.delenv(API_TOKEN_ENV, raising=False)
        credentials = load_credentials()
        assert credentials.account_id == "from-env"
        assert credentials.api_token is None


class TestPricingConfig:
    """Test pricing override loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "pricing.yaml") -> str:
        """Write pricing data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            if isinstance(config_data, str):
                f.write(config_data)
            else:
                yaml.dump(config_data, f)
        return config_path

    def test_overrides_apply_on_top_of_defaults(self):
        """Test that overridden fields change and everything else is kept."""
        config_path = self._write_config({
            "base_fee": 0,
            "products": {
                "r2": {"storage": {"free_limit": 20, "rate": 0.02}},
                "ai": {"neurons": {"per_day": False}},
            },
        })

        policy = load_pricing_config(config_path)

        assert policy.base_fee == 0
        storage = policy.get_pricing("r2").rule("storage")
        assert storage.free_limit == 20
        assert storage.rate == 0.02
        assert storage.rate_unit == "GB-month"
        assert not policy.get_pricing("ai").rule("neurons").per_day
        assert policy.get_pricing("kv") == DEFAULT_PRICING.get_pricing("kv")

    def test_base_fee_only(self):
        policy = load_pricing_config(self._write_config({"base_fee": 7.5}))
        assert policy.base_fee == 7.5
        assert policy.products == DEFAULT_PRICING.products

    def test_defaults_not_mutated(self):
        load_pricing_config(self._write_config({"products": {"kv": {"reads": {"rate": 9}}}}))
        assert DEFAULT_PRICING.get_pricing("kv").rule("reads").rate == 0.50

    def test_unit_and_label_overrides(self):
        config_path = self._write_config({
            "products": {"images": {"requests": {"unit_size": 1000, "rate_unit": "images"}}},
        })
        rule = load_pricing_config(config_path).get_pricing("images").rule("requests")
        assert rule.unit_size == 1000
        assert rule.rate_label == "$1.00/1K images"

    def test_missing_file_raises_error(self):
        """Test that missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Pricing config file not found"):
            load_pricing_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml_raises_error(self):
        config_path = self._write_config("products: [unclosed")
        with pytest.raises(yaml.YAMLError, match="Invalid YAML in pricing file"):
            load_pricing_config(config_path)

    @pytest.mark.parametrize("config_data,message", [
        ("", "Pricing file is empty"),
        ("- 1\n- 2\n", "Pricing file must contain a mapping"),
        ({"currency": "EUR"}, "Unknown pricing keys"),
        ({"base_fee": -1}, "'base_fee' must be a number >= 0"),
        ({"base_fee": "five"}, "'base_fee' must be a number >= 0"),
        ({"base_fee": True}, "'base_fee' must be a number >= 0"),
        ({"products": ["r2"]}, "'products' must be a dictionary"),
        ({"products": {"pages": {}}}, "Unknown product 'pages'"),
        ({"products": {"r2": 1}}, "Product 'r2' must be a dictionary"),
        ({"products": {"r2": {"egress": {}}}}, "Unknown pricing dimension 'egress' for product 'r2'"),
        ({"products": {"r2": {"storage": 3}}}, "products.r2.storage must be a dictionary"),
        ({"products": {"r2": {"storage": {"price": 1}}}}, "Unknown keys in products.r2.storage"),
        ({"products": {"r2": {"storage": {"rate": -0.1}}}}, "'products.r2.storage.rate' must be a number >= 0"),
        ({"products": {"r2": {"storage": {"unit_size": 0}}}}, "'unit_size' in products.r2.storage must be a positive integer"),
        ({"products": {"r2": {"storage": {"unit_size": 1.5}}}}, "'unit_size' in products.r2.storage must be a positive integer"),
        ({"products": {"r2": {"storage": {"rate_unit": ""}}}}, "'rate_unit' in products.r2.storage must be a non-empty string"),
        ({"products": {"ai": {"neurons": {"per_day": "yes"}}}}, "'per_day' in products.ai.neurons must be true or false"),
    ])
    def test_invalid_config_raises_error(self, config_data, message):
        """Test that every invalid shape is rejected rather than ignored."""
        config_path = self._write_config(config_data)
        with pytest.raises(ConfigurationError) as exc_info:
            load_pricing_config(config_path)
        assert message in str(exc_info.value)
