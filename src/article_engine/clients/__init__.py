"""Service adapters: LLM, SERP, coverage scorer and WordPress."""

from article_engine.clients.llm import AnthropicGenerator
from article_engine.clients.neuronwriter import NeuronWriterClient
from article_engine.clients.serper import SerperClient
from article_engine.clients.wp_publisher import WordPressPublisher

__all__ = ["AnthropicGenerator", "NeuronWriterClient", "SerperClient", "WordPressPublisher"]
