from .base import BaseAsyncLLM, RequestAdapter
from .copilot import CopilotLLM
from .ollama import OllamaLLM
from .openai import OpenAILLM

__all__ = ["BaseAsyncLLM", "RequestAdapter", "CopilotLLM", "OllamaLLM", "OpenAILLM"]
