"""Setup configuration for Catalog Tree."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="catalog-tree",
    version="0.1.0",
    description="Hierarchical product category engine: tree, flat list, folders, reorder and cascading delete",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["catalog_tree", "catalog_tree.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "catalog-tree=catalog_tree.main:main",
        ],
    },
)
