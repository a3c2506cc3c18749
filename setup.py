from setuptools import setup, find_packages

setup(
    name="yield_curve_engine",
    version="0.1.0",
    description="Yield curve bootstrapping, spot/forward rates, YTM and bond mispricing",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)
