"""Model serving service package.

Layout:
- ``loaders``: model area access and graph/label materialization.
- ``runtime``: registry, graph execution, image preprocessing and ranking.
- ``api``: REST endpoints for prediction, image classification and metadata.

Import convenience:
- from app.runtime.model_manager import ModelManager
"""
