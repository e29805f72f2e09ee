#!/usr/bin/env python3

from setuptools import setup, find_packages
import os
import re

here = os.path.dirname(os.path.abspath(__file__))

# Read version without importing the package
with open(os.path.join(here, 'taxreport', 'scripts', 'taxreport.py'), encoding='utf-8') as fh:
    version = re.search(r'^__version__\s*=\s*"([^"]+)"', fh.read(), re.M).group(1)

# Read README file
readme_path = os.path.join(here, 'README.md')
if os.path.exists(readme_path):
    with open(readme_path, 'r', encoding='utf-8') as fh:
        long_description = fh.read()
else:
    long_description = "taxreport: hierarchical clade-count reports from per-read taxonomic classifications"

setup(
    name="taxreport",
    version=version,
    description="Hierarchical clade-count reports from per-read taxonomic classifications",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="BSD-3-Clause",
    keywords=['bioinformatics', 'taxonomy', 'metagenomics', 'kraken', 'report'],
    packages=find_packages(exclude=['test*', 'tests*', 'docs*']),
    python_requires=">=3.8",
    install_requires=[
        'numpy>=1.19.0',
        'pandas>=1.2.0',
        'requests>=2.25.0',
        'setuptools>=45.0',
    ],
    extras_require={
        'test': ['pytest>=6.0'],
    },
    entry_points={
        'console_scripts': [
            'taxreport=taxreport.scripts.cmd:taxreport_command',
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Bioinformatics",
    ],
    zip_safe=False,
)
