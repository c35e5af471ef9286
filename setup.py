# setup.py
from setuptools import setup, find_packages

setup(
    name="ledgerhound",
    version="0.1.0",
    description="Import Danish bank CSV exports and detect recurring payments",
    author="Your Name",
    author_email="you@example.com",
    url="https://github.com/yourusername/ledgerhound",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "pandas>=1.1",
        "python-dotenv>=0.19",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "ledgerhound=ledgerhound.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
