"""E-Ballot: election management, one-vote-per-voter ballots and results."""

__version__ = "1.0.0"
