from .model_config import PipelineConfig

__all__ = ['PipelineConfig']
