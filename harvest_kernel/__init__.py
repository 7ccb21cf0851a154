"""
Harvest kernel -- batch lifecycle and exclusive resource assignment.

Groups collected raw units into processing batches, keeps every unit
claimed by at most one batch, moves batches through their status lifecycle
and derives packaging and labeling batches 1:1 from completed upstream
batches.
"""

__version__ = "0.1.0"
