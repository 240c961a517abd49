"""Setup code for protbp."""
from setuptools import find_packages
from setuptools import setup

setup(
    name="protbp",
    version="0.1.0",
    description="Bayesian protein inference with loopy belief propagation",
    packages=find_packages(include=["protbp", "protbp.*"]),
    python_requires=">=3.9",
    install_requires=[
        "click",
        "cloudpathlib[gs]",
        "networkx",
        "numpy",
        "pandas",
        "python-dotenv",
        "pyyaml",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["protbp=protbp.main:main"]},
)
