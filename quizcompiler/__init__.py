"""
Quiz Compiler
=============
Text-to-question compiler for raw exam dumps.

Architecture:
    - Normalizer: Canonicalizes line endings and unicode punctuation
    - Heuristics: Fuzzy tag matching and OCR confusion fixups
    - Lexer: Turns lines into a flat token stream
    - State Machine: Builds questions from tokens (strict, then loose)
    - Rapid Fire: Synthesizes distractors for linear fact/answer pairs
    - Strategies: JSON passthrough first, lexical pipeline otherwise

Version: 1.0.0
"""

__version__ = "1.0.0"
