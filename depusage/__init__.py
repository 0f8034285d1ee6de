"""depusage: find which declared dependencies a repository actually uses."""

from depusage.engine import AnalysisRequest, Ecosystem, analyse

__version__ = "0.1.0"

__all__ = ["AnalysisRequest", "Ecosystem", "analyse", "__version__"]
