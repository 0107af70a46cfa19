"""CivicDesk LLM Package"""

from .bedrock import BedrockLLM

__all__ = ["BedrockLLM"]
