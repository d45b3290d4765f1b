from .ollama import OllamaRequestAdapter
from .openai import OpenAIRequestAdapter

__all__ = ["OllamaRequestAdapter", "OpenAIRequestAdapter"]
