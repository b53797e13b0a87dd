"""Built-in CLI sub-commands for pagecrawl.

* :mod:`~pagecrawl.commands.crawl` -- ``crawl`` and ``download``, registered
  directly on the root app.
* :mod:`~pagecrawl.commands.cache` -- inspect and clear the page cache.
* :mod:`~pagecrawl.commands.config` -- show, change and check settings.
"""
