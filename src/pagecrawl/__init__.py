"""pagecrawl -- cached, version-aware downloading of content-API page trees.

This package puts an on-disk request/response cache in front of a paginated,
versioned content API and drives a breadth-first crawl over the page graph.
Repeat crawls are answered from the cache; with *redownload newer versions*
enabled, pages whose server-side version moved on are fetched again.

Typical workflow::

    pagecrawl crawl 0367c2db381a4f8b9ce360f388a6b2e3
    pagecrawl cache show

Modules:
    app: Typer application and CLI entry point.
    crawler: Breadth-first crawl driver and per-page download orchestration.
    identity: Page identity parsing and normalisation.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    events: Structured observability events.
    spans: Rich-text span attribute parsing.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
