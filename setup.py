#!/usr/bin/env python3
"""
Setup script for AquilaMail.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="aquilamail",
    version="1.0.0",
    description="Async-native mail service with template rendering, pluggable attachments and lifecycle events",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="AquilaMail Contributors",
    packages=find_packages(include=["aquilamail", "aquilamail.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "jinja2>=3.1.0",
        "markupsafe>=2.1.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "aiosmtplib>=2.0.0",
        "python-magic>=0.4.27",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Email",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="mail email smtp templates async",
)
