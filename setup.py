from setuptools import setup, find_packages

setup(
    name="chaindiag",
    version="0.1.0",
    packages=find_packages(include=["chaindiag", "chaindiag.*"]),
    install_requires=[
        "numpy>=1.26",
        "pandas>=2.1",
        "jax[cpu]>=0.4",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest", "pytest-mock", "emcee>=3.1.4"],
    },
    python_requires=">=3.9",
)
