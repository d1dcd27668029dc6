"""riakcheck — health-check orchestrator for a Riak node."""

__version__ = "0.3.0"
