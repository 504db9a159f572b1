"""
Setup script for adaptivity-engine.

The adaptivity engine decides which content variant a learner sees for a
lesson slot. It serves three roles:

1. Selection Core - Deterministic, explainable variant decisions
2. Guard Language - Safe boolean eligibility expressions for policy authors
3. Authoring Aid - CLI for dry-running decisions and validating guards

The 'adaptivity' command is the primary entry point.
"""

from setuptools import find_packages, setup

setup(
    name="adaptivity-engine",
    version="1.0.0",
    description="Adaptive content variant selection engine with sticky decisions and guard expressions",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Right Learning",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "adaptivity=adaptivity.cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning adaptivity personalization education variants",
)
