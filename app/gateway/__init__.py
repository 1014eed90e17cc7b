"""LLM provider gateway.

One ``prompt -> text`` contract over eleven providers:
  - Provider adapters (endpoint, auth scheme, envelope, text path)
  - Alias resolution with an OpenAI-compatible default
  - ProviderGateway: AiModel config resolution, timeouts, metrics,
    performance feedback to the model selector
"""
