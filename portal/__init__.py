"""Backend package: settings, storage models, pipelines and the HTTP API.

This package serves the AI-assisted handlers of the patient/researcher portal:
relevance search, favorites summaries and the assistant chat personas.
"""
