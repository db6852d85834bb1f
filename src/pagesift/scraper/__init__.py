"""Single-page extraction: browser sessions through to markdown.

Sub-modules:
- ``rules``: rule store for cleaning selectors and markdown rules
- ``request_filter``: network request blocking for browser sessions
- ``session_manager``: shared Chromium instance and capped session pool
- ``content_loader``: content richness probe, selector waits and scrolling
- ``cleaner``: DOM pruning with per-rule outcomes
- ``converter``: HTML to markdown plus the markdown rule chain
- ``metadata``: page metadata extraction and formatting
- ``pipeline``: extraction pipeline and its fallback state machine
"""
