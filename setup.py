# Copyright © 2025 Evermark

import re
import os
import codecs
from os import path
from io import open
from setuptools import setup, find_packages


here = path.abspath(path.dirname(__file__))

with open(path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

with codecs.open(os.path.join(here, "evermark/__init__.py"), encoding="utf-8") as init_file:
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", init_file.read(), re.M)
    if not version_match:
        raise RuntimeError("Unable to find version string in evermark/__init__.py")
    version_string = version_match.group(1)


requirements = [
    # HTTP and networking
    "aiohttp>=3.9.5",
    "httpx>=0.27.0",

    # Ledger (EVM JSON-RPC)
    "web3>=6.15.0",

    # Monitoring and metrics
    "prometheus_client>=0.19.0",
    "structlog>=23.2.0",

    # Retry and resilience
    "tenacity>=8.2.0",

    # Environment and configuration
    "python-dotenv>=1.0.0",

    # Utilities
    "click>=8.1.0",

    # Supabase (fast store)
    "supabase>=2.0.0",
]

test_requirements = [
    "pytest>=8.0.0",
    "pytest-cov>=4.1.0",
    "pytest-mock>=3.10.0",
    "pytest-asyncio>=0.21.0",
]

setup(
    name="evermark-index",
    version=version_string,
    description="Content resolution and leaderboard aggregation for Evermarks",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Evermark Team",
    license="MIT",
    packages=find_packages(include=["evermark", "evermark.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
    },
    entry_points={
        "console_scripts": [
            "evermark=evermark.cli:main",
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Internet :: WWW/HTTP",
    ],
)
