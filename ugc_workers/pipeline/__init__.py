"""
UGC Video Pipeline

Stage orchestration for:
  Download → Extract Frames → Face Swap → Generate Video → Lip Sync

Each stage hands a remote job to a provider (PiAPI, sync.so), waits for it
through the shared poller, and materializes the result locally.
"""

from .orchestrator import PipelineStageRunner
from .routes import pipeline_router
from .models import PipelineStatus
from .storage import ArtifactStore

__all__ = [
    "PipelineStageRunner",
    "pipeline_router",
    "PipelineStatus",
    "ArtifactStore",
]
