"""Language-model services: gateway client, prompt templates and relevance scoring."""
