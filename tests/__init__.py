"""Tests for the model serving service.

Fixtures in ``conftest.py`` build tiny frozen graphs at test time, so the
suite needs TensorFlow but no model files checked into the repository.
"""
