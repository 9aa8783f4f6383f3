"""sapp: shared-expense backend with asynchronous LLM spending categorization."""
