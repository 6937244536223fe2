"""
Iterative refinement engine for generated browser journey tests.
"""
__version__ = "0.1.0"
