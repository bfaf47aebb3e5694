"""Integration tests for keypool.

These tests call the real Gemini API and need a working key:

    export KEYPOOL_LIVE_GEMINI_API_KEY=AIza...

Run with: pytest tests/integration/ -v -m integration
"""
