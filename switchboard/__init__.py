"""
Switchboard: multi-provider LLM request orchestration.

Resolves which backend serves a model, which credential to use,
how tool-calling policy is encoded per vendor, how streams are
normalized and what each turn costs. See switchboard.llm.
"""

__version__ = "0.1.0"
