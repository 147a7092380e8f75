"""
Swing Signal Pipeline.

Decision pipeline for swing and long-term equity trades:
- Market structure detection and validation
- Multi-timeframe trend scoring and entry recommendations
- Fixed-risk position sizing
- Four-stage fail-closed decision engine
"""

__version__ = "1.0.0"
__author__ = "Swing Signal Pipeline"
