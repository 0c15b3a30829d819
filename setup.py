"""
Setup script for Batch Trainer.

This package provides minibatch construction and epoch-based training loop
drivers over a pluggable compute backend, with a reference PyTorch backend.
"""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Core requirements
install_requires = [
    "torch>=1.12.0",
    "numpy>=1.21.0",
    "pyyaml>=6.0",
    "dataclasses-json>=0.5.0",
    "colorlog>=6.0.0",
]

# Test requirements
test_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "pytest-mock>=3.8.0",
]

# Development requirements
dev_requires = test_requires + [
    "ruff>=0.1.0",
    "mypy>=0.991",
]

extras_require = {
    "test": test_requires,
    "dev": dev_requires,
}

setup(
    name="batch-trainer",
    version="1.0.0",
    author="Batch Trainer Team",
    description="Minibatch construction and training loop drivers for prebuilt models",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*", "examples*", "docs*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.10",
    install_requires=install_requires,
    extras_require=extras_require,
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "machine learning",
        "deep learning",
        "minibatch",
        "training loop",
        "learning rate schedule",
        "early stopping",
    ],
)
