"""PrincipalSync - external principal reconciliation for directory groups."""

__version__ = "0.1.0"
