"""
AI Module - Language understanding for the orchestrator.

Currently holds the intent classifier (relay.ai.intent), which runs
locally: regex families plus exemplar similarity, with optional OpenAI
embeddings.
"""
