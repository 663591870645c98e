"""
Setup script for backward compatibility with older build systems.
Modern installations should use pyproject.toml.
"""
from setuptools import setup

# All configuration is in pyproject.toml
setup()
