"""Progress reporting and plotting for the VaR pipeline"""

from .progress import ProgressMonitor
from .visualization import VaRVisualizer

__all__ = ['ProgressMonitor', 'VaRVisualizer']
