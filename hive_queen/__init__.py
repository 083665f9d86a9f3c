"""hive-queen: governance automation for community-run repositories.

Proposals move through discussion, voting and implementation phases driven
by reactions, labels and comment commands. Webhooks react to events as they
happen; scheduled reconciliation jobs repair anything the webhooks missed.
"""

__version__ = "0.4.0"
