"""Setup script for LegisTrack."""

from setuptools import setup, find_packages

setup(
    name="legistrack",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "httpx>=0.27.0",
        "tenacity>=8.2.3",
        "sqlalchemy>=2.0.25",
        "anthropic>=0.42.0",
        "python-dotenv>=1.0.0",
        "click>=8.1.7",
        "pydantic>=2.5.3",
        "structlog>=24.1.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.29.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "legistrack=legistrack.cli:cli",
        ],
    },
    python_requires=">=3.10",
)
