"""Browser-side modules (Playwright).

``dom`` holds the in-page probes and mutations, ``polling`` the bounded
presence poll, ``interactor`` the simulated typing/submission, and
``launcher`` the page lifecycle used by the CLI.
"""
