"""Governance engine.

Pure evaluators and the services that apply their results to the tracker.

Key Components:
    - voting: Reaction tally, exit evaluation, outcome decision, label plans
    - governance: Discussion and voting phase transitions
    - intake: Implementation PR admission against ready proposals
    - merge_readiness: Preflight checks and the merge-ready label
    - leaderboard: Candidate PR leaderboard comments on ready issues
    - reconciliation: Batch runner over installations and repositories
    - jobs: The scheduled jobs run by the batch runner

Example:
    >>> from hive_queen.engine.voting import decide_outcome
    >>> decision, shortfall = decide_outcome(validated, exit_config)
"""
