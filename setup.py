"""
ERP Service

Procurement and inventory REST API: purchase orders, goods receipts with
PO-GRN validation, batch inventory, landed cost and smart allocation.
"""

from setuptools import setup, find_packages

setup(
    name="erp-service",
    version="1.0.0",
    description="ERP Service - procurement, inventory costing and smart allocation API",
    author="ERP Team",
    packages=find_packages(include=["erp", "erp.*"]),
    python_requires=">=3.11",
    install_requires=[
        # Web framework
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",

        # Configuration and schemas
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",

        # PostgreSQL support
        "sqlalchemy[asyncio]>=2.0.25",
        "asyncpg>=0.29.0",

        # Database migrations
        "alembic>=1.13.0",

        # Monitoring and observability
        "sentry-sdk[fastapi]>=1.39.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "httpx>=0.26.0",
            "aiosqlite>=0.19.0",
            "black>=23.10.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "License :: Other/Proprietary License",
    ],
)
