"""Setup configuration for rp-reporter."""

from setuptools import setup, find_packages

setup(
    name="rp-reporter",
    version="0.1.0",
    description="Report test launches, items, logs and attachments to Report Portal",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "pyyaml>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "rp-reporter=rp_reporter.cli:main",
        ],
    },
)
