"""
Provisioning pipelines.
"""
