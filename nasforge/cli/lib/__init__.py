"""
Wrappers around the external storage and file-server subsystems.
"""
