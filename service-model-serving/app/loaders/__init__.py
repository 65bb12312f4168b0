"""Model loaders.

Loaders encapsulate how models are materialized from the model area:
``ModelStore`` reads descriptors, graph bytes and labels; ``ModelLoader``
turns them into an immutable ``LoadedModel``.
"""
