"""Setup for LogiFlex Python SDK."""

from setuptools import find_packages, setup

setup(
    name="logiflex-sdk",
    version="0.1.0",
    description="LogiFlex marketplace API Python SDK",
    packages=find_packages(include=["logiflex_sdk", "logiflex_sdk.*"]),
    install_requires=[
        "requests>=2.31.0",
    ],
    python_requires=">=3.11",
)
