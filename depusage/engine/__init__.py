"""Dependency usage resolution and attribution engine."""

from depusage.engine.ecosystems import Ecosystem
from depusage.engine.service import AnalysisRequest, analyse

__all__ = ["AnalysisRequest", "Ecosystem", "analyse"]
