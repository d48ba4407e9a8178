"""
Files Gateway - a minimal HTTP front for an S3 bucket.

This package contains the complete application:
- core: Framework-agnostic key and naming rules
- infrastructure: Object storage integration
- api: FastAPI routes, dependencies and middleware
- config: Application configuration
"""

__version__ = "0.1.0"
