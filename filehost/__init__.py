"""
filehost: self-hosted admin-gated file host
Built with FastAPI + Uvicorn
"""

__version__ = "1.0.0"
__author__ = "filehost"
__description__ = "Admin-gated file host with a public download prefix"
