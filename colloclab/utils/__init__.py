# colloclab/utils/__init__.py
"""
Shared constants for CollocLab.
"""
