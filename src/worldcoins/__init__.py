"""WorldCoins: proof-of-personhood gated token creation and claiming."""

__version__ = "0.1.0"
