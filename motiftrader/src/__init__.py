"""
MotifTrader - Motif-ensemble crypto trading agent with adaptive learning.

Packages:
- data: market data, indicators, persistence
- execution: exchange client, trading mode, market intelligence
- motifs: motif scorers and the weighted ensemble
- learning: Bayesian, Markov, Q-learning and Monte Carlo models
- risk: position book, sizing, stops and dynamic risk
- strategy: single- and multi-symbol strategy engines, market rotation
- orchestration: trading bot loops
"""

__version__ = "1.0.0"
