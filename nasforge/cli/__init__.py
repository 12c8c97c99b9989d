"""
Command line interface for NAS Forge.
"""
