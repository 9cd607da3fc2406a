"""hookbridge - GitHub webhooks and issue expansions for Matrix rooms."""
__version__ = "0.1.0"
