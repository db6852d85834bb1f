"""Crawl jobs: batches of URLs extracted sequentially in the background.

Sub-modules:
- ``jobs``: ``CrawlOrchestrator`` (create, process, query, resume)
- ``job_store``: per-job JSON reports in the reports directory
- ``sitemap``: recursive site map expansion over httpx
- ``webhooks``: job report, progress and single-conversion callbacks
"""
