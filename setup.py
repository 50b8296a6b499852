"""
Setup script for the cfsearch package.
"""

from setuptools import setup, find_packages

setup(
    name="cfsearch",
    version="0.1.0",
    description="Counterfactual explanations for black-box predictive models",
    author="Veer Dosi",
    packages=find_packages(include=["cfsearch", "cfsearch.*"]),
    py_modules=["main"],
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.9.0",
        "tenacity>=8.2.0",
        "rich>=13.0.0",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cfsearch=main:main",
        ],
    },
    python_requires=">=3.9",
)
