from setuptools import setup, find_packages

setup(
    name="fdnl",
    version="0.1.0",
    description="Flowing Drainage Network Length model for intermittent stream networks",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "pandas>=2.0",
        "numpy",
        "pydantic>=2.0",
        "PyYAML",
        "python-dotenv",
        "matplotlib",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
