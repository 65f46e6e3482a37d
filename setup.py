"""
Setup script for the automation research service.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="automation-leads",
    version="2.0.0",
    packages=find_packages(include=["src", "src.*", "runner_service", "runner_service.*"]),
    py_modules=["version"],
    python_requires=">=3.11",
    install_requires=[
        "python-dotenv>=1.0",
        "redis>=5.0",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "fastapi>=0.110",
        "langchain-core>=0.2",
        "langchain-openai>=0.1",
        "tenacity>=8.2",
        "json-repair>=0.25",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
