from .mock_scope import MockStageCamera

__all__ = ["MockStageCamera"]
