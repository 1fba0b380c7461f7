"""Test suite for smartflash_llm."""
