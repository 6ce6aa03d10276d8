"""
Services Layer

Pure scheduling logic plus the coordinator that persists it:
- Accept domain inputs (sessions, models, plain values)
- Return domain outputs (models, dataclasses, dicts)
- Do NOT depend on HTTP request/response objects
"""
