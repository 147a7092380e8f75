"""
Position sizing for the signal pipeline.
"""

from .position_sizer import PositionSizer, SizingResult, size_position

__all__ = ['PositionSizer', 'SizingResult', 'size_position']
