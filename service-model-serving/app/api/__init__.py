"""API subpackage for the model serving service.

Routes include feature-vector prediction, image classification, and model
discovery. Designed to be thin layers over the ``ModelManager`` to keep
business logic out of transport code.
"""
