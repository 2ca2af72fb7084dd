"""
pyzpos: z-position correction for stacks of serial sections.

Pairwise section similarities are stored per section and assembled into
dense similarity matrices; corrected z-coordinates become lookup-table
transforms that warp section indices to real z-positions.
"""

__version__ = "0.1.0"
