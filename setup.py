"""Setup script for SWCache."""

from setuptools import setup, find_packages

setup(
    name="swcache",
    version="1.0.0",
    description="Offline-capable, versioned asset caching layer for static web apps.",
    packages=find_packages(include=["swcache", "swcache.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "httpx>=0.27",
        "anyio>=4.0",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-dotenv>=1.0",
        "aiofiles>=23.2",
        "asyncer>=0.0.5",
        "typing_extensions>=4.9",
    ],
    extras_require={
        "http2": ["h2>=4.1"],
        "server": ["gunicorn>=21.2"],
        "test": [
            "pytest>=8.0",
            "respx>=0.21",
            "httpx>=0.27",
        ],
    },
)
