"""
gridrepo setup.py — Package configuration.
"""

from setuptools import find_packages, setup

setup(
    name="gridrepo",
    version="1.0.0",
    description="gridrepo — Typed file repositories over MongoDB GridFS",
    packages=find_packages(include=["gridrepo", "gridrepo.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "pymongo>=4.6,<5",
        "motor>=3.3",
        "inflect>=7.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
