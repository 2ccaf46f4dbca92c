"""Propagate page moves and deletions on MediaWiki client sites to the
site links of their items in a Wikibase repository."""

__version__ = "1.0.0"
