"""Runtime components: model registry, graph execution, image preprocessing,
label ranking and the ``ModelManager`` facade used by the API."""
