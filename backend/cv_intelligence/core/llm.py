# backend/cv_intelligence/core/llm.py
"""
Gemini LLM handle (LangChain wrapper).
- Uses ChatGoogleGenerativeAI, temperature=0
- Reads API key via core.config.get_gemini_api_key()
- Built lazily: the heuristic analysis mode never needs a key
"""

from __future__ import annotations

from functools import lru_cache

from langchain_google_genai import ChatGoogleGenerativeAI
from .config import get_gemini_api_key


@lru_cache(maxsize=4)
def get_llm(model: str = "gemini-2.0-flash") -> ChatGoogleGenerativeAI:
    return ChatGoogleGenerativeAI(
        model=model,
        temperature=0,
        api_key=get_gemini_api_key(),
    )


__all__ = ["get_llm"]
