"""Configuration settings for the epidemiological analysis service."""

import os


def get_postgres_uri():
    """Get PostgreSQL connection URI from environment variables."""
    host = os.environ.get("DB_HOST", "localhost")
    port = 5433 if host == "localhost" else 5432
    password = os.environ.get("DB_PASSWORD", "epi_analysis_pass")
    user = os.environ.get("DB_USER", "epi_analysis_user")
    db_name = os.environ.get("DB_NAME", "epi_analysis_db")
    return f"postgresql://{user}:{password}@{host}:{port}/{db_name}"


def get_redis_host_and_port():
    """Get Redis connection details from environment variables."""
    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", "6379"))
    return dict(host=host, port=port)


def get_redis_url():
    """Get Redis URL from environment variables."""
    redis_config = get_redis_host_and_port()
    return f"redis://{redis_config['host']}:{redis_config['port']}"


def get_detector_config():
    """Get Shewhart detector settings from environment variables."""
    return dict(
        default_baseline_days=int(os.environ.get("SHEWHART_BASELINE_DAYS", "60")),
        min_baseline_days=int(os.environ.get("SHEWHART_MIN_BASELINE_DAYS", "7")),
        min_baseline_cases=int(os.environ.get("SHEWHART_MIN_BASELINE_CASES", "10")),
        control_limit_sigma=float(os.environ.get("SHEWHART_SIGMA", "3.0")),
        region_code_length=int(os.environ.get("REGION_CODE_LENGTH", "7")),
    )


def get_aggregation_config():
    """Get aggregation settings from environment variables."""
    return dict(
        severe_weight=int(os.environ.get("SEVERE_CASE_WEIGHT", "2")),
    )


def get_scheduler_config():
    """
    Get scheduler job settings from environment variables.

    target_offset_days is the lag between today and the date a job works on.
    Two days gives late lab reports time to arrive before a day is treated
    as consolidated.
    """
    scan_flags = os.environ.get(
        "SCAN_FLAGS",
        "BIS_SUSPECTED,BIS_SEVERE,LAB_LEUKOCYTOSIS,LAB_NEUTROPHILIA,LAB_LEFT_SHIFT",
    )
    return dict(
        target_offset_days=int(os.environ.get("JOB_TARGET_OFFSET_DAYS", "2")),
        scan_flags=[flag.strip() for flag in scan_flags.split(",") if flag.strip()],
    )
