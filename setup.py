"""Setup configuration for agent-swarm-orchestrator package."""

from setuptools import setup, find_packages

setup(
    name="agent-swarm-orchestrator",
    version="0.1.0",
    description="Multi-agent task orchestration core: sharding, context, coordination and cost tracking",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
            "black>=23.0.0",
        ],
    },
)
