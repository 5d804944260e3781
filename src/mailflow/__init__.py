"""MailFlow: turn new email into to-do items with an LLM."""

__version__ = "0.1.0"
