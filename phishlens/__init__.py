"""PhishLens: phishing risk scoring for web destinations."""

__version__ = "0.1.0"
