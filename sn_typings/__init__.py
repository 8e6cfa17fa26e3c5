"""
ServiceNow Typings Generator

A CLI tool that mirrors table schema from a ServiceNow instance and renders
TypeScript declarations for its GlideRecord and GlideElement APIs.
"""

__version__ = "1.0.0"
