"""LLM completion client (Gemini via Vertex AI)"""
