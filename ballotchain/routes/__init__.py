"""BallotChain v1.0 - HTTP routers."""
