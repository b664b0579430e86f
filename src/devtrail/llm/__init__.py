from .client import (
    AnthropicClient,
    AnthropicPlanner,
    build_llm_client,
    parse_json_response,
)

__all__ = ["AnthropicClient", "AnthropicPlanner", "build_llm_client", "parse_json_response"]
