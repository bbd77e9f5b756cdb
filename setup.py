from setuptools import find_packages, setup

setup(
    name="colloclab",
    version="0.1.0",
    description="Pseudospectral direct collocation for trajectory optimization of legged systems",
    author="CollocLab Authors",
    packages=find_packages(include=["colloclab", "colloclab.*"]),
    install_requires=[
        "numpy>=1.22.0",
        "matplotlib>=3.5.0",
        "scipy>=1.8.0",
        "casadi>=3.6.0",  # CasADi builds the expression graph and drives IPOPT
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Mathematics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="optimal control, trajectory optimization, collocation, pseudospectral methods, legged robots",
)
