"""
Backend package for the fitness community admin console.

This package provides a FastAPI application that gates the admin surface on
the caller's role and sends order notification mails rendered from stored
templates. Document store, blob storage, identity provider and mail transport
each sit behind a small interface with an in-memory implementation for
development and tests.
"""
