"""Setup script for epi-surveillance-analysis package following Cosmic Python pattern."""

from setuptools import setup, find_namespace_packages

setup(
    name="epi-surveillance-analysis",
    version="1.0.0",
    description="Epidemiological lab surveillance - clinical flags, daily case series and Shewhart anomaly detection",
    author="Epi Surveillance Team",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["epi_analysis*", "shared*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2",
        "sqlalchemy>=2,<2.1",
        "psycopg2-binary",
        "redis",
        "numpy",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "fakeredis",
        ],
        "dev": [
            "black",
            "flake8",
            "mypy",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "epi-jobs=epi_analysis.entrypoints.jobs:main",
            "epi-job-consumer=epi_analysis.entrypoints.redis_eventconsumer:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
)
