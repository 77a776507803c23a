"""
Scoring oracle package.

Public API:
    - ScoringOracle: abstract provider interface
    - OpenAIScoringOracle: OpenAI-compatible implementation
    - ScoringOracleAdapter: timeout-bounded wrapper used by the rule evaluator
"""
