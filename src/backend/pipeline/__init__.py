from .url_pipeline import LogOptions, PipelineResult, PipelineStatus, UrlPipeline

__all__ = [
    "LogOptions",
    "PipelineResult",
    "PipelineStatus",
    "UrlPipeline",
]
