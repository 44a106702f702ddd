"""Tests for environment-driven configuration."""

from swarm_orchestrator.config.orchestrator_config import (
    OrchestratorConfig,
    get_orchestrator_config,
)


def test_defaults(monkeypatch):
    """Test defaults when no environment overrides are set."""
    for name in ("CONTEXT_CACHE_CAPACITY", "TASK_TIMEOUT_MINUTES", "HOURLY_COST"):
        monkeypatch.delenv(name, raising=False)

    config = get_orchestrator_config()

    assert config.context_cache_capacity == 1000
    assert config.task_timeout_ms == 30 * 60 * 1000
    assert config.hourly_cost == 75


def test_environment_overrides(monkeypatch):
    """Test values are read from the environment at construction."""
    monkeypatch.setenv("CONTEXT_CACHE_CAPACITY", "50")
    monkeypatch.setenv("TASK_TIMEOUT_MINUTES", "0.5")
    monkeypatch.setenv("BASELINE_PLANNING_HOURS", "6")

    config = OrchestratorConfig()

    assert config.context_cache_capacity == 50
    assert config.task_timeout_ms == 30000
    assert config.baseline_for("planning") == 6


def test_baseline_fallback(config):
    """Test unknown operations use the default baseline."""
    assert config.baseline_for("deployment") == config.default_baseline_hours
