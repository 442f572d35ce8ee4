"""
Liftbridge CLI Setup
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="liftbridge-cli",
    version="0.1.0",
    author="Liftbridge CLI Contributors",
    author_email="",
    description="Command-line client for managing and using Liftbridge streams",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Distributed Computing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
        "Environment :: Console",
    ],
    keywords=[
        "liftbridge", "message-broker", "streaming", "cli", "messaging",
        "distributed-systems", "asyncio", "publish", "subscribe"
    ],
    python_requires=">=3.10",
    install_requires=[
        "typer>=0.9",
        "rich>=13.0",
        "structlog>=23.1",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "protobuf>=4.22",
        "grpcio>=1.56",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=3.0",
            "pytest-asyncio>=0.20",
            "black>=22.0",
            "pylint>=2.0",
            "mypy>=0.990",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "liftbridge-cli=liftbridge_cli.cli:main",
        ],
        "liftbridge_cli.transports": [
            "liftbridge=liftbridge_cli.grpc_client:connect_grpc",
            "memory=liftbridge_cli.memory:connect_memory",
        ],
    },
    license="MIT",
    include_package_data=True,
    zip_safe=False,
)
