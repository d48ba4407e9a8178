"""
Core gateway logic.

This package is framework-agnostic: it doesn't import FastAPI or boto3.
Key construction and naming rules can be tested without a server or a bucket.
"""
