"""
Analytics module for the airspace intelligence dashboard.

Provides jamming signature scoring, zone aggregation, triangulation,
military and proximity analysis, threat assessment, traffic and safety
statistics, anomaly DNA and predictive analytics over track windows.
"""

from .intelligence import IntelligenceEngine, WindowAnalysis

__all__ = [
    'IntelligenceEngine',
    'WindowAnalysis',
]
