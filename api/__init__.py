"""
API FastAPI di scan-processor.
"""
