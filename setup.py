from setuptools import setup, find_packages

setup(
    name="garch-evt-var",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["calculate_var"],
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "arch",
        "statsmodels",
        "matplotlib",
        "seaborn",
        "duckdb",
        "tqdm",
        "psutil",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["calculate-var=calculate_var:main"],
    },
    python_requires=">=3.8",
)
