"""Trial pipeline: the post-interaction decision policy and the orchestrating state machine."""
