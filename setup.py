#!/usr/bin/env python
"""
halo_stencil 安装脚本
"""

from setuptools import setup, find_packages
import os

# 安全读取 README
here = os.path.abspath(os.path.dirname(__file__))
long_description = ""
readme_path = os.path.join(here, "README.md")
if os.path.exists(readme_path):
    with open(readme_path, "r", encoding="utf-8") as fh:
        long_description = fh.read()

setup(
    name="halo-stencil",
    version="1.0.0",
    description="基于MPI行带分解与Halo交换的分布式5点Stencil计算",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*", "examples*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering",
        "Topic :: System :: Distributed Computing",
    ],
    python_requires=">=3.8",
    install_requires=[
        "torch>=2.2.0",
        "mpi4py>=3.1.0",
        "numpy>=1.21.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-mpi>=0.6",
        ],
    },
    entry_points={
        "console_scripts": [
            "halo-stencil=halo_stencil.cli:main",
        ],
    },
)
