"""
PSA workflow engine.

Stage graphs, approval loops, invoice generation and project financial
rollups for a professional services automation platform.
"""

__version__ = "1.0.0"
