"""MetaPulse token evaluation core.

Scores newly launched Solana tokens with a two-model AI consensus, a
deterministic multi-factor scorer and a heuristic risk check, and turns the
result into a sized buy/no-buy decision.
"""

__version__ = "0.1.0"
