"""Test settings validation."""

import pytest

from threader.core.errors import ConfigurationError

from factories import make_settings


class TestValidateForRun:
    """Test fail-fast validation before a run."""

    def test_offline_settings_pass(self):
        """Test that keyword classification needs no credential."""
        make_settings().validate_for_run()

    def test_discovery_without_key_passes(self):
        """Test that LLM discovery alone does not require a key, since it falls back."""
        make_settings(use_llm_discovery=True).validate_for_run()

    def test_classifier_without_key_fails(self):
        """Test that the LLM classifier without a key is rejected."""
        with pytest.raises(ConfigurationError):
            make_settings(use_llm_classifier=True).validate_for_run()

    def test_classifier_with_either_key_passes(self):
        """Test that both spellings of the API key are accepted."""
        make_settings(use_llm_classifier=True, openai_api_key="sk-test").validate_for_run()
        make_settings(use_llm_classifier=True, OPENAI_API_KEY="sk-test").validate_for_run()

    def test_bad_bounds_fail(self):
        """Test that non-positive bounds and negative delays are rejected."""
        for overrides in ({"time_window_hours": 0}, {"max_items_per_source": 0},
                          {"max_workers": 0}, {"max_retries": 0}, {"request_delay": -1.0}):
            with pytest.raises(ConfigurationError):
                make_settings(**overrides).validate_for_run()
