"""Sage services.

- analysis_service: health observations and Cognitive Linguistic Index scoring
- conversation_service: LLM responder and talk session lifecycle
- persistence_service: hosted store with local fallback
"""
