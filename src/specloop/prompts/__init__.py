"""Prompt templates for build and plan runs."""

from specloop.prompts.catalog import PromptCatalog

__all__ = ["PromptCatalog"]
