"""
jobloom I/O: distributed sequences and sinks.

Submodules:
    dseq   - DSeq / DSink value types and base constructors
    formats - input/output format contracts and file-based formats
    text   - line-oriented text files
    jsonl  - typed key/value records as JSON lines
    mux    - one job reading several sequences
    dux    - one task writing several named outputs
"""

from jobloom.io import dux, formats, jsonl, mux, text
from jobloom.io.dseq import DSeq, DSink
from jobloom.io.formats import input_paths, output_paths

__all__ = [
    "DSeq",
    "DSink",
    "input_paths",
    "output_paths",
    "dux",
    "formats",
    "jsonl",
    "mux",
    "text",
]
