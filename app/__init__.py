"""DomaVault analytics backend.

Scores tokenized domains from the Doma registry as loan collateral and
serves the results over a small JSON API.
"""
