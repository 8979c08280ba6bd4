"""Chunked basecalling of nanopore reads
"""

__version__ = '0.1.0'
