"""
Test Suite for Decision Tracker

Tests for the tracker package:
- Domain core: task model, result boundary, snapshot store
- Engines: suggestions and daily briefing
- Reflections, LLM fallback, HTTP API and CLI
"""
