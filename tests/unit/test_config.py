"""Unit tests for environment-driven configuration."""

import config


def test_detector_defaults(monkeypatch):
    """Test that detector settings fall back to their defaults."""
    for name in ("SHEWHART_BASELINE_DAYS", "SHEWHART_MIN_BASELINE_DAYS", "SHEWHART_MIN_BASELINE_CASES",
                 "SHEWHART_SIGMA", "REGION_CODE_LENGTH"):
        monkeypatch.delenv(name, raising=False)

    assert config.get_detector_config() == dict(
        default_baseline_days=60,
        min_baseline_days=7,
        min_baseline_cases=10,
        control_limit_sigma=3.0,
        region_code_length=7,
    )


def test_detector_overrides(monkeypatch):
    """Test that detector settings are read from the environment."""
    monkeypatch.setenv("SHEWHART_SIGMA", "2.5")
    monkeypatch.setenv("SHEWHART_MIN_BASELINE_CASES", "20")

    detector_config = config.get_detector_config()

    assert detector_config["control_limit_sigma"] == 2.5
    assert detector_config["min_baseline_cases"] == 20


def test_scan_flags_are_parsed(monkeypatch):
    """Test that the scan flag list is split and stripped."""
    monkeypatch.setenv("SCAN_FLAGS", " BIS_SUSPECTED, ,LAB_LEFT_SHIFT ")
    assert config.get_scheduler_config()["scan_flags"] == ["BIS_SUSPECTED", "LAB_LEFT_SHIFT"]


def test_default_scan_flags(monkeypatch):
    """Test the default scheduler settings."""
    monkeypatch.delenv("SCAN_FLAGS", raising=False)
    monkeypatch.delenv("JOB_TARGET_OFFSET_DAYS", raising=False)
    assert config.get_scheduler_config() == dict(
        target_offset_days=2,
        scan_flags=["BIS_SUSPECTED", "BIS_SEVERE", "LAB_LEUKOCYTOSIS", "LAB_NEUTROPHILIA", "LAB_LEFT_SHIFT"],
    )


def test_postgres_uri_uses_local_port_on_localhost(monkeypatch):
    """Test that localhost uses the mapped port and other hosts the default."""
    monkeypatch.delenv("DB_HOST", raising=False)
    assert config.get_postgres_uri().endswith("@localhost:5433/epi_analysis_db")

    monkeypatch.setenv("DB_HOST", "postgres")
    assert "@postgres:5432/" in config.get_postgres_uri()
