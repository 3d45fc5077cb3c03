"""
comp-trader - an automated trader for on-chain trading competitions.

Each round the competition lists a new token against USDM. The bot watches
for the round, trades a slice of its balance every cycle on the call of a
generative model (or a coin flip when the model lets it down), and starts
over when the round ends.
"""

__version__ = "0.1.0"
