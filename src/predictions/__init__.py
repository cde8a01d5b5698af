"""
Predictions package.

Contiene:
- team_form / form_cache: forma recente delle squadre con cache su disco
- model: OutcomeModel (Poisson indipendente, 1X2 + Under/Over)
- markets: scelta del mercato "safe" e bucket di rischio
"""
from .markets import MarketPick, pick_market  # noqa: F401
from .model import OutcomeModel, OutcomeProbabilities  # noqa: F401

__all__ = ["OutcomeModel", "OutcomeProbabilities", "MarketPick", "pick_market"]
