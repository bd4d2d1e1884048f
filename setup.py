#!/usr/bin/env python
import re

from setuptools import find_packages, setup

with open("src/wrap_studio/version.py") as f:
    version = re.search(r'__version__ = "([^"]+)"', f.read()).group(1)

setup(
    name="wrap-studio",
    version=version,
    description="Layer composition, masking and history engine for vehicle wrap designs",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "numpy",
        "Pillow>=10.1",
        "attrs>=22.2.0",
        "aggdraw",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["wrap-studio=wrap_studio.cli:main"],
    },
)
