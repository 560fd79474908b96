# setup.py
from setuptools import setup, find_packages

install_requires = [
    "requests>=2.28",
    "tqdm>=4.64",
    "rocksdict>=0.3",
    "setproctitle>=1.3",
]

extras_require = {
    "test": ["pytest>=7.0"],
}

setup(
    name="partitionkit",
    version="0.1.0",
    description="Adaptive density partitioning and idempotent partition progress tracking",
    python_requires=">=3.9",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=install_requires,
    extras_require=extras_require,
)
