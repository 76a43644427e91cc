"""Request pipelines: relevance search, favorites summary and assistant chat.

Each pipeline is a plain async function of (store, gateway, request fields)
so it can be called from the HTTP layer or directly from scripts and tests.
"""
