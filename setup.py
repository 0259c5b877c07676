#!/usr/bin/env python3
"""
Setup configuration for TuneBridge
Music catalog access, track resolution and playback orchestration
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "aiohttp>=3.9.1",
    "pyyaml>=6.0.1",
    "python-dotenv>=1.0.0",
    "colorama>=0.4.6",
]

setup(
    name="tunebridge",
    version="0.9.0",
    author="TuneBridge Team",
    description="Music catalog access, track resolution and playback orchestration",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["tunebridge", "tunebridge.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Framework :: AsyncIO",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
        ],
    },
    include_package_data=True,
    keywords="music streaming catalog playback spotify async",
)
