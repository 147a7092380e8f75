"""Market structure detection and validation."""

from src.structure.models import (
    Direction,
    MitigationKind,
    BreakOfStructure,
    ChangeOfCharacter,
    FairValueGap,
    OrderBlock,
    MitigationBlock,
    StructureFindings,
    StructureVerdict,
)
from src.structure.detectors import (
    detect_bos,
    detect_choch,
    detect_fvg,
    detect_order_blocks,
    detect_mitigation_blocks,
)
from src.structure.validator import validate_structure

__all__ = [
    'Direction',
    'MitigationKind',
    'BreakOfStructure',
    'ChangeOfCharacter',
    'FairValueGap',
    'OrderBlock',
    'MitigationBlock',
    'StructureFindings',
    'StructureVerdict',
    'detect_bos',
    'detect_choch',
    'detect_fvg',
    'detect_order_blocks',
    'detect_mitigation_blocks',
    'validate_structure',
]
