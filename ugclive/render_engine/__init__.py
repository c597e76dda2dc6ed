"""
Render pipeline: codec normalization, duration resolution, layout composition,
ffmpeg rendering and the bounded scheduler that drives them.
"""

from .orchestrator import JobOrchestrator
from .schemas import CompositionSpec, GenerationRequest, RenderJob
from .worker import RenderScheduler

__all__ = ["CompositionSpec", "GenerationRequest", "JobOrchestrator", "RenderJob", "RenderScheduler"]
