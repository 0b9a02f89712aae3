#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2025/12/5 15:36
# @Author  : hejun
"""
项目安装文件
"""
from setuptools import setup, find_namespace_packages
import pathlib

here = pathlib.Path(__file__).parent.resolve()

# 读取README
long_description = (here / "README.md").read_text(encoding="utf-8")

setup(
    name="fleet-trip-correlation",
    version="1.0.0",
    description="车队行程与交付记录混合关联引擎",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Fleet Correlation Team",
    author_email="example@example.com",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering :: Information Analysis",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="fleet, telemetry, correlation, geospatial, clustering, fuzzy matching",
    packages=find_namespace_packages(where=".", include=["config", "core", "utils"]),
    py_modules=["main"],
    python_requires=">=3.9, <4",
    install_requires=[
        "pandas>=2.0.0",
        "numpy>=1.23.0",
        "scikit-learn>=1.2.0",
        "scipy>=1.10.0",
        "geopy>=2.3.0",
        "shapely>=2.0.0",
        "rapidfuzz>=3.0.0",
        "joblib>=1.2.0",
        "sqlalchemy>=2.0.0",
        "pymysql>=1.0.0",
        "tqdm>=4.60.0",
        "psutil>=5.9.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0", "black>=22.0", "flake8>=5.0"],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "fleet-correlation=main:main",
        ],
    },
)
