# setup.py
from setuptools import setup, find_packages

setup(
    name="spider_stream",
    version="0.1.0",
    description="Asynchronous streaming web spider: URLs, forms, scripts, subdomains and S3 buckets",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "lxml>=4.9",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "click>=8.1",
        "tldextract>=5.0",
        "multidict>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "spider-stream=spider_stream.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
