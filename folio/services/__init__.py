"""Services - LLM client configuration and DSPy signatures."""
