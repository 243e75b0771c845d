from setuptools import setup, find_packages

setup(
    name="slotquorum",
    version="0.1.0",
    packages=find_packages(include=["sq_core", "sq_core.*"]),
    install_requires=[
        # HTTP client
        "httpx>=0.24.0",
        # Data validation and configuration
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
        # CLI and UI
        "click>=8.1.3",
        "rich>=13.0.0",
        # Logging
        "coloredlogs>=15.0.0",
        # Monitoring
        "prometheus_client>=0.17.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-httpx>=0.21.0",
            "pytest-mock>=3.10.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sqcore=sq_core.cli.main:main",
        ],
    },
    author="SlotQuorum",
    description="Slot and block agreement survey across several ledger RPC nodes",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
