from docpreview.pipeline.types import PipelinePayload, PipelineTask

__all__ = ["PipelinePayload", "PipelineTask"]
